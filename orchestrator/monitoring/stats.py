"""Aggregate counters and status snapshots for observability."""

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog

if TYPE_CHECKING:
    from orchestrator.scheduler.cron import CronScheduler
    from orchestrator.scheduler.dispatcher import TaskDispatcher
    from orchestrator.workflow.engine import WorkflowEngine


logger = structlog.get_logger(__name__)


@dataclass
class DispatcherStats:
    """Task counters kept by the dispatcher."""
    total_tasks_queued: int = 0
    total_tasks_completed: int = 0
    total_tasks_failed: int = 0
    agent_usage_count: Dict[str, int] = field(default_factory=dict)
    model_usage_count: Dict[str, int] = field(default_factory=dict)
    last_task_time: Optional[datetime] = None

    def record_queued(self) -> None:
        self.total_tasks_queued += 1
        self.last_task_time = datetime.utcnow()

    def record_completed(self, agent_name: str) -> None:
        self.total_tasks_completed += 1
        self.agent_usage_count[agent_name] = self.agent_usage_count.get(agent_name, 0) + 1

    def record_failed(self) -> None:
        self.total_tasks_failed += 1

    def record_model(self, provider: str, model: str) -> None:
        key = f"{provider}/{model}"
        self.model_usage_count[key] = self.model_usage_count.get(key, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tasks_queued": self.total_tasks_queued,
            "total_tasks_completed": self.total_tasks_completed,
            "total_tasks_failed": self.total_tasks_failed,
            "agent_usage_count": dict(self.agent_usage_count),
            "model_usage_count": dict(self.model_usage_count),
            "last_task_time": self.last_task_time.isoformat() if self.last_task_time else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DispatcherStats":
        last = data.get("last_task_time")
        return cls(
            total_tasks_queued=data.get("total_tasks_queued", 0),
            total_tasks_completed=data.get("total_tasks_completed", 0),
            total_tasks_failed=data.get("total_tasks_failed", 0),
            agent_usage_count=dict(data.get("agent_usage_count", {})),
            model_usage_count=dict(data.get("model_usage_count", {})),
            last_task_time=datetime.fromisoformat(last) if last else None,
        )


def save_snapshot(path: str, data: Dict[str, Any]) -> bool:
    """Write ``data`` as JSON; failures are logged and reported as ``False``."""
    try:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        return True
    except Exception as e:
        logger.error("stats_snapshot_save_failed", path=path, error=str(e))
        return False


def load_snapshot(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except Exception as e:
        logger.error("stats_snapshot_load_failed", path=path, error=str(e))
        return None


class StatusReporter:
    """Derives a system-wide status view from the running components."""

    def __init__(
        self,
        dispatcher: "TaskDispatcher",
        cron_scheduler: Optional["CronScheduler"] = None,
        workflow_engine: Optional["WorkflowEngine"] = None
    ):
        self.dispatcher = dispatcher
        self.cron_scheduler = cron_scheduler
        self.workflow_engine = workflow_engine

    def dispatcher_status(self) -> Dict[str, Any]:
        tasks_by_status = Counter(
            task["status"] for task in self.dispatcher.list_tasks()
        )
        agents = self.dispatcher.registry.list_agents()

        return {
            "active": self.dispatcher.active,
            "uptime": self.dispatcher.uptime(),
            "queue_length": len(self.dispatcher.get_queue()),
            "tasks_by_status": dict(tasks_by_status),
            "agents": {
                "total": len(agents),
                "busy": sum(1 for agent in agents if agent["status"] == "busy"),
                "idle": sum(1 for agent in agents if agent["status"] == "idle"),
            },
            "stats": self.dispatcher.stats.to_dict(),
        }

    def scheduler_status(self) -> Optional[Dict[str, Any]]:
        if self.cron_scheduler is None:
            return None
        jobs = self.cron_scheduler.get_all_tasks()
        return {
            "running": self.cron_scheduler.is_running,
            "total_jobs": len(jobs),
            "total_runs": sum(job["run_count"] for job in jobs),
            "total_errors": sum(job["error_count"] for job in jobs),
        }

    def workflow_status(self) -> Optional[Dict[str, Any]]:
        if self.workflow_engine is None:
            return None
        runs = self.workflow_engine.get_active_workflows()
        return {
            "registered_workflows": len(self.workflow_engine.get_all_workflows()),
            "runs": len(runs),
            "runs_by_status": dict(Counter(run["status"] for run in runs)),
        }

    def snapshot(self) -> Dict[str, Any]:
        return {
            "timestamp": datetime.utcnow().isoformat(),
            "dispatcher": self.dispatcher_status(),
            "scheduler": self.scheduler_status(),
            "workflows": self.workflow_status(),
        }
