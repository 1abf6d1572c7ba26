"""REST API over the orchestrator services."""

import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orchestrator.api.rest.models import (
    CreateScheduleRequest,
    RunWorkflowRequest,
    ScheduleFromDescriptionRequest,
    ScheduleTaskRequest,
    WorkflowCreate,
)
from orchestrator.errors import OrchestratorError, TaskNotFoundError, WorkflowDefinitionError
from orchestrator.runtime import Services
from orchestrator.workflow import loader


logger = structlog.get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the API around ``services``; their lifecycle follows the app's."""
    services = services or Services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("api_starting")
        await services.start()
        yield
        await services.stop()
        logger.info("api_stopped")

    app = FastAPI(
        title="Agent Orchestrator API",
        description="Agent task dispatch, cron scheduling and workflows",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        logger.info(
            "request_processed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=f"{time.time() - start_time:.4f}s"
        )
        return response

    @app.exception_handler(OrchestratorError)
    async def orchestrator_error_handler(request: Request, exc: OrchestratorError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in errors
        )
        return JSONResponse(
            status_code=400,
            content={"error": "validation_error", "message": message or "Invalid request"}
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "message": str(exc) or "Internal server error"}
        )

    # Agent manager

    @app.post("/agent-manager/start")
    async def start_manager() -> Dict[str, Any]:
        await services.dispatcher.start()
        return {"success": True, "active": services.dispatcher.active}

    @app.post("/agent-manager/stop")
    async def stop_manager() -> Dict[str, Any]:
        await services.dispatcher.stop()
        return {"success": True, "active": services.dispatcher.active}

    @app.get("/agent-manager/stats")
    async def manager_stats() -> Dict[str, Any]:
        return services.dispatcher.get_stats()

    @app.get("/agent-manager/agents")
    async def list_agents() -> Dict[str, Any]:
        return {"agents": services.registry.list_agents()}

    @app.post("/agent-manager/schedule-task")
    async def schedule_task(request: ScheduleTaskRequest) -> Dict[str, Any]:
        task_id = services.dispatcher.add_task(
            request.agent_name,
            request.action,
            request.params,
            request.options.priority
        )
        return {"success": True, "taskId": task_id}

    @app.get("/agent-manager/task/{task_id}")
    async def get_task(task_id: str) -> Dict[str, Any]:
        task = services.dispatcher.get_task_status(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    # Cron scheduler

    @app.get("/scheduler/tasks")
    async def list_scheduled_tasks() -> Dict[str, Any]:
        return {"tasks": services.cron_scheduler.get_all_tasks()}

    @app.get("/scheduler/tasks/{agent_id}")
    async def list_agent_scheduled_tasks(agent_id: str) -> Dict[str, Any]:
        return {"tasks": services.cron_scheduler.get_tasks_for_agent(agent_id)}

    @app.post("/scheduler/create")
    async def create_schedule(request: CreateScheduleRequest) -> Dict[str, Any]:
        job_id = await services.cron_scheduler.schedule_task(
            request.agent_id,
            request.name,
            request.cron_expression,
            request.action,
            request.params
        )
        return {"success": True, "taskId": job_id}

    @app.post("/scheduler/from-description")
    async def create_schedule_from_description(
        request: ScheduleFromDescriptionRequest
    ) -> Dict[str, Any]:
        job_id = await services.cron_scheduler.create_schedule_from_description(
            request.agent_id,
            request.description
        )
        return {"success": True, "taskId": job_id}

    @app.delete("/scheduler/delete/{job_id}")
    async def delete_schedule(job_id: str) -> Dict[str, Any]:
        await services.cron_scheduler.remove_task(job_id)
        return {"success": True}

    # Workflows

    @app.get("/workflows")
    async def list_workflows() -> Dict[str, Any]:
        return {"workflows": services.workflow_engine.get_all_workflows()}

    @app.get("/workflows/{workflow_id}")
    async def get_workflow(workflow_id: str) -> Dict[str, Any]:
        return services.workflow_engine.get_workflow(workflow_id).to_dict()

    @app.post("/workflows")
    async def create_workflow(request: WorkflowCreate) -> Dict[str, Any]:
        if request.yaml_content:
            configs = loader.parse_string(request.yaml_content)
            workflow_ids = [
                services.workflow_engine.register_workflow(config) for config in configs
            ]
            return {"success": True, "workflowIds": workflow_ids}

        if not request.steps:
            raise WorkflowDefinitionError("Workflow needs steps or yamlContent")

        config = request.model_dump(exclude={"yaml_content"})
        config["steps"] = [step.model_dump(exclude_none=True) for step in request.steps]
        workflow_id = services.workflow_engine.register_workflow(config, request.id)
        return {"success": True, "workflowId": workflow_id}

    @app.post("/workflows/{workflow_id}/run")
    async def run_workflow(
        workflow_id: str,
        request: Optional[RunWorkflowRequest] = None
    ) -> Dict[str, Any]:
        request = request or RunWorkflowRequest()
        run_id = services.workflow_engine.start_workflow(
            workflow_id,
            request.context,
            request.options
        )
        return {"success": True, "runId": run_id}

    @app.get("/workflow-runs")
    async def list_runs() -> Dict[str, Any]:
        return {"runs": services.workflow_engine.get_active_workflows()}

    @app.get("/workflow-runs/{run_id}")
    async def get_run(run_id: str) -> Dict[str, Any]:
        return services.workflow_engine.get_workflow_status(run_id)

    @app.delete("/workflow-runs/{run_id}")
    async def stop_run(run_id: str) -> Dict[str, Any]:
        stopped = services.workflow_engine.stop_workflow(run_id)
        return {"success": True, "stopped": stopped}

    # System

    @app.get("/status")
    async def status() -> Dict[str, Any]:
        return services.reporter.snapshot()

    @app.get("/health")
    async def health_check() -> Dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "dispatcher_active": services.dispatcher.active,
            "scheduler_running": services.cron_scheduler.is_running,
        }

    return app
