"""Scheduler module: priority dispatch and cron jobs."""

from orchestrator.scheduler.cron import (
    CronExpression,
    CronJob,
    CronScheduler,
    parse_cron,
    validate_cron_expression,
)
from orchestrator.scheduler.dispatcher import TaskDispatcher
from orchestrator.scheduler.queue import Priority, Task, TaskQueue, TaskStatus

__all__ = [
    "CronExpression",
    "CronJob",
    "CronScheduler",
    "Priority",
    "Task",
    "TaskDispatcher",
    "TaskQueue",
    "TaskStatus",
    "parse_cron",
    "validate_cron_expression",
]
