"""Agent Orchestrator: task dispatch, cron scheduling and workflows for agents."""

__version__ = "1.0.0"

from orchestrator.agent.registry import AgentRegistry
from orchestrator.config import Settings, get_settings
from orchestrator.runtime import Services
from orchestrator.scheduler.cron import CronScheduler
from orchestrator.scheduler.dispatcher import TaskDispatcher
from orchestrator.workflow.engine import WorkflowEngine

__all__ = [
    "AgentRegistry",
    "CronScheduler",
    "Services",
    "Settings",
    "TaskDispatcher",
    "WorkflowEngine",
    "get_settings",
]
