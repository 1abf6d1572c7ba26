"""Sequential workflow execution engine."""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union
import uuid

import structlog

from orchestrator.agent.registry import AgentRegistry
from orchestrator.config import Settings, get_settings
from orchestrator.errors import (
    RunNotFoundError,
    TimeoutExceededError,
    WorkflowDefinitionError,
    WorkflowNotFoundError,
)
from orchestrator.monitoring.events import EventEmitter, EventHandler, EventType
from orchestrator.storage.audit import AuditLog, safe_log_action
from orchestrator.workflow.step import StepOutcome, WorkflowStep


logger = structlog.get_logger(__name__)


def merge_context(base: Mapping[str, Any], update: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Shallow merge; keys in ``update`` overwrite keys in ``base``."""
    merged = dict(base)
    if update:
        merged.update(update)
    return merged


class RunStatus(str, Enum):
    """Workflow run status."""
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self != RunStatus.RUNNING


@dataclass
class WorkflowDefinition:
    """A registered workflow."""
    id: str
    name: str
    steps: List[WorkflowStep]
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)
    source: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "steps": len(self.steps),
            "created_at": self.created_at.isoformat(),
            "metadata": self.metadata,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {**self.summary(), "steps": [step.to_dict() for step in self.steps], "source": self.source}


@dataclass
class StepResult:
    """Outcome of one step attempt within a run."""
    step_id: str
    step_index: int
    action: str
    status: str
    duration: Optional[float] = None
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_index": self.step_index,
            "action": self.action,
            "status": self.status,
            "duration": self.duration,
            "result": self.result,
            "error": self.error,
        }


@dataclass
class WorkflowRun:
    """One execution of a workflow definition."""
    run_id: str
    workflow_id: str
    workflow_name: str
    steps: List[WorkflowStep]
    context: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    current_step_index: int = 0
    status: RunStatus = RunStatus.RUNNING
    results: List[StepResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def finish(self, status: RunStatus, error: Optional[str] = None) -> bool:
        """Move to a terminal status; returns ``False`` if already terminal."""
        if self.status.is_terminal:
            return False
        self.status = status
        self.error = error
        self.completed_at = datetime.utcnow()
        return True

    def to_dict(self) -> Dict[str, Any]:
        total = len(self.steps)
        current = min(self.current_step_index + 1, total) if total else 0
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "current_step": current,
            "total_steps": total,
            "progress": f"{current}/{total}",
            "context": dict(self.context),
            "results": [r.to_dict() for r in self.results],
            "error": self.error,
        }


class WorkflowEngine:
    """Registers workflows and runs them step by step.

    Runs execute in background tasks. A failing step ends its run with
    ``error``; a step condition that evaluates falsy ends it early with
    ``completed``. ``stop_workflow`` is cooperative: the step in flight
    finishes, no further step starts.
    """

    source = "workflow_manager"

    def __init__(
        self,
        registry: AgentRegistry,
        audit_log: Optional[AuditLog] = None,
        settings: Optional[Settings] = None,
        events: Optional[EventEmitter] = None
    ):
        self.registry = registry
        self.audit_log = audit_log
        self.settings = settings or get_settings()
        self.events = events or EventEmitter()
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self._runs: Dict[str, WorkflowRun] = {}
        self._run_tasks: Dict[str, asyncio.Task] = {}

    def register_workflow(
        self,
        config: Mapping[str, Any],
        workflow_id: Optional[str] = None
    ) -> str:
        """Register (or overwrite) a workflow definition and return its ID."""
        workflow_id = workflow_id or config.get("id") or f"workflow_{uuid.uuid4()}"

        steps_config = config.get("steps") or []
        if not isinstance(steps_config, (list, tuple)):
            raise WorkflowDefinitionError(f"Steps of workflow {workflow_id} must be a list")

        steps = [
            WorkflowStep.from_config(step, default_timeout=self.settings.step_timeout)
            for step in steps_config
        ]

        step_ids = [step.id for step in steps]
        duplicates = {s for s in step_ids if step_ids.count(s) > 1}
        if duplicates:
            raise WorkflowDefinitionError(
                f"Duplicate step ids in workflow {workflow_id}: {sorted(duplicates)}"
            )

        if workflow_id in self._workflows:
            logger.warning("workflow_overwritten", workflow_id=workflow_id)

        workflow = WorkflowDefinition(
            id=workflow_id,
            name=config.get("name") or workflow_id,
            description=config.get("description") or "",
            steps=steps,
            metadata=dict(config.get("metadata") or {}),
            source=config.get("source"),
        )
        self._workflows[workflow_id] = workflow

        logger.info(
            "workflow_registered",
            workflow_id=workflow_id,
            name=workflow.name,
            steps=len(steps)
        )
        return workflow_id

    def get_workflow(self, workflow_id: str) -> WorkflowDefinition:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    def get_all_workflows(self) -> List[Dict[str, Any]]:
        return [workflow.summary() for workflow in self._workflows.values()]

    def start_workflow(
        self,
        workflow_id: str,
        context: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None
    ) -> str:
        """Create a run and execute it in the background; returns the run ID."""
        workflow = self.get_workflow(workflow_id)

        run = WorkflowRun(
            run_id=f"run_{uuid.uuid4()}",
            workflow_id=workflow_id,
            workflow_name=workflow.name,
            steps=list(workflow.steps),
            context=dict(context or {}),
            options=dict(options or {}),
        )
        self._runs[run.run_id] = run

        logger.info(
            "workflow_started",
            workflow_id=workflow_id,
            name=workflow.name,
            run_id=run.run_id
        )
        self._audit(f"Workflow started: {workflow.name}", metadata={"runId": run.run_id})
        self.events.emit(EventType.WORKFLOW_STARTED, run_id=run.run_id, workflow_id=workflow_id)

        task = asyncio.create_task(self._execute_workflow(run))
        self._run_tasks[run.run_id] = task
        task.add_done_callback(lambda t, run_id=run.run_id: self._run_done(run_id, t))

        return run.run_id

    def _run_done(self, run_id: str, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("workflow_task_error", run_id=run_id, error=str(error))

    async def _execute_workflow(self, run: WorkflowRun) -> WorkflowRun:
        try:
            while run.current_step_index < len(run.steps):
                if run.status != RunStatus.RUNNING:
                    break

                outcome = await self._execute_step(run, run.current_step_index)

                # Stopped while the step was in flight
                if run.status != RunStatus.RUNNING:
                    break

                if outcome is None:
                    failed = run.results[-1]
                    run.finish(RunStatus.ERROR, failed.error)
                    break

                step = run.steps[run.current_step_index]
                if step.condition is not None and not step.condition(outcome, run.context):
                    logger.info(
                        "workflow_condition_stop",
                        run_id=run.run_id,
                        step_id=step.id
                    )
                    run.finish(RunStatus.COMPLETED)
                    break

                run.current_step_index += 1

            run.finish(RunStatus.COMPLETED)

        except Exception as e:
            run.finish(RunStatus.ERROR, str(e))
            logger.error(
                "workflow_error",
                workflow_id=run.workflow_id,
                run_id=run.run_id,
                error=str(e)
            )

        self._report_run_end(run)
        return run

    def _report_run_end(self, run: WorkflowRun) -> None:
        if run.status == RunStatus.STOPPED:
            return

        success = run.status == RunStatus.COMPLETED
        logger.info(
            "workflow_finished",
            workflow_id=run.workflow_id,
            run_id=run.run_id,
            status=run.status.value
        )
        self._audit(
            f"Workflow finished: {run.workflow_name} (status: {run.status.value})",
            success=success,
            metadata={"runId": run.run_id, "error": run.error}
        )

        event_type = EventType.WORKFLOW_COMPLETED if success else EventType.WORKFLOW_ERROR
        self.events.emit(
            event_type,
            run_id=run.run_id,
            workflow_id=run.workflow_id,
            status=run.status.value,
            context=dict(run.context),
            results=[r.to_dict() for r in run.results],
            error=run.error
        )

    async def _execute_step(self, run: WorkflowRun, step_index: int) -> Optional[StepOutcome]:
        """Execute one step; returns ``None`` when it failed."""
        step = run.steps[step_index]
        total = len(run.steps)

        logger.info(
            "workflow_step_started",
            run_id=run.run_id,
            step=f"{step_index + 1}/{total}",
            step_id=step.id,
            action=step.action
        )
        self._audit(
            f"Executing step {step_index + 1}: {step.id} in workflow {run.workflow_name}",
            metadata={"runId": run.run_id}
        )

        started = time.monotonic()
        try:
            outcome = await step.execute(dict(run.context), self.registry)
        except Exception as e:
            message = str(e) or type(e).__name__
            result = StepResult(
                step_id=step.id,
                step_index=step_index,
                action=step.action,
                status="error",
                duration=time.monotonic() - started,
                error=message,
            )
            run.results.append(result)

            logger.error(
                "workflow_step_failed",
                run_id=run.run_id,
                step_id=step.id,
                error=message,
                error_type=type(e).__name__
            )
            self._audit(
                f"Error in step {step_index + 1} ({step.id}): {message}",
                success=False,
                metadata={"runId": run.run_id}
            )
            self.events.emit(
                EventType.WORKFLOW_STEP_ERROR,
                run_id=run.run_id,
                workflow_id=run.workflow_id,
                step_id=step.id,
                step_index=step_index,
                error=message
            )
            return None

        run.context = merge_context(run.context, outcome.context)

        result = StepResult(
            step_id=step.id,
            step_index=step_index,
            action=step.action,
            status="success",
            duration=time.monotonic() - started,
            result=outcome.data,
        )
        run.results.append(result)

        logger.info(
            "workflow_step_completed",
            run_id=run.run_id,
            step_id=step.id,
            duration=result.duration
        )
        self.events.emit(
            EventType.WORKFLOW_STEP_COMPLETED,
            run_id=run.run_id,
            workflow_id=run.workflow_id,
            step_id=step.id,
            step_index=step_index,
            result=result.to_dict()
        )
        return outcome

    def stop_workflow(self, run_id: str) -> bool:
        """Stop a run before its next step; a finished run is left as is."""
        run = self._get_run(run_id)

        if not run.finish(RunStatus.STOPPED):
            logger.info("workflow_already_finished", run_id=run_id, status=run.status.value)
            return False

        logger.info("workflow_stopped", workflow_id=run.workflow_id, run_id=run_id)
        self._audit(f"Workflow stopped: {run.workflow_name}", metadata={"runId": run_id})
        self.events.emit(EventType.WORKFLOW_STOPPED, run_id=run_id, workflow_id=run.workflow_id)
        return True

    def _get_run(self, run_id: str) -> WorkflowRun:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def get_workflow_status(self, run_id: str) -> Dict[str, Any]:
        return self._get_run(run_id).to_dict()

    def get_active_workflows(self) -> List[Dict[str, Any]]:
        return [run.to_dict() for run in self._runs.values()]

    async def wait_for_run(self, run_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Wait until the run's background task ends and return its status."""
        run = self._get_run(run_id)
        task = self._run_tasks.get(run_id)
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout)
            except asyncio.TimeoutError:
                raise TimeoutExceededError(
                    f"Timed out after {timeout}s waiting for run {run_id}"
                ) from None
        return run.to_dict()

    def on(self, event_type: Union[EventType, str], handler: EventHandler) -> None:
        self.events.on(event_type, handler)

    async def shutdown(self) -> None:
        """Stop every running run and wait for the in-flight steps."""
        pending = []
        for run_id, task in self._run_tasks.items():
            if not task.done():
                self.stop_workflow(run_id)
                pending.append(task)
        await asyncio.gather(*pending, return_exceptions=True)

    def _audit(self, message: str, success: bool = True, metadata: Optional[Dict[str, Any]] = None) -> None:
        safe_log_action(self.audit_log, self.source, message, success, metadata)
