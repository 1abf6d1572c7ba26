"""Cron-based recurring agent actions."""

import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple
import uuid

import structlog
from croniter import croniter

from orchestrator.agent.base import call_handler, resolve_action
from orchestrator.agent.registry import AgentRegistry
from orchestrator.ai.provider import TextGenerator
from orchestrator.errors import (
    InvalidExpressionError,
    OrchestratorError,
    ScheduledJobNotFoundError,
    SchedulerInactiveError,
    UnknownAgentError,
    UnsupportedActionError,
)
from orchestrator.monitoring.events import EventEmitter, EventType
from orchestrator.storage.audit import AuditLog, safe_log_action


logger = structlog.get_logger(__name__)


SPECIAL_EXPRESSIONS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

_CRON_IN_TEXT = re.compile(
    r"([0-9*,/-]+\s+[0-9*,/-]+\s+[0-9*,/-]+\s+[0-9*,/-]+\s+[0-9*,/-]+)"
)


@dataclass
class CronExpression:
    """Parsed five-field cron expression."""
    minute: str = "*"
    hour: str = "*"
    day: str = "*"
    month: str = "*"
    weekday: str = "*"

    def __str__(self) -> str:
        return " ".join([self.minute, self.hour, self.day, self.month, self.weekday])

    def to_dict(self) -> Dict[str, str]:
        return {
            "minute": self.minute,
            "hour": self.hour,
            "day": self.day,
            "month": self.month,
            "weekday": self.weekday,
        }


def parse_cron(expression: str) -> CronExpression:
    """
    Parse a cron expression.

    Standard: minute hour day month weekday

    Special strings (@yearly, @annually, @monthly, @weekly, @daily,
    @midnight, @hourly) are expanded to their five-field form.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidExpressionError(str(expression), "empty expression")

    expression = expression.strip()
    expanded = SPECIAL_EXPRESSIONS.get(expression.lower(), expression)

    parts = expanded.split()
    if len(parts) != 5:
        raise InvalidExpressionError(expression, f"expected 5 fields, got {len(parts)}")

    parsed = CronExpression(*parts)
    if not croniter.is_valid(str(parsed)):
        raise InvalidExpressionError(expression)

    return parsed


def validate_cron_expression(expression: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a cron expression.

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        parse_cron(expression)
        return True, None
    except InvalidExpressionError as e:
        return False, e.message


def next_runs(
    expression: str,
    n: int = 5,
    base_time: Optional[datetime] = None
) -> List[datetime]:
    """Next ``n`` fire times of ``expression`` after ``base_time``."""
    cron = croniter(str(parse_cron(expression)), base_time or datetime.now().astimezone())
    return [cron.get_next(datetime) for _ in range(n)]


class ScheduledAction(str, Enum):
    """What a cron job does to its agent."""
    RUN = "run"
    STOP = "stop"
    CUSTOM = "custom"


class JobStatus(str, Enum):
    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass
class CronJob:
    """A recurring agent action."""
    job_id: str
    agent_id: str
    name: str
    cron_expression: str
    action: str
    params: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)
    status: JobStatus = JobStatus.ACTIVE
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    run_count: int = 0
    error_count: int = 0
    last_status: Optional[str] = None
    last_error: Optional[str] = None
    handle: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.job_id,
            "agent_id": self.agent_id,
            "name": self.name,
            "cron_expression": self.cron_expression,
            "action": self.action,
            "params": self.params,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_status": self.last_status,
            "last_error": self.last_error,
        }


class CronScheduler:
    """Fires agent actions on cron schedules.

    Each job owns an ``asyncio.Task`` that sleeps until the next fire time.
    A failing execution is logged and recorded on the job; the schedule
    keeps firing.
    """

    name = "scheduler"

    def __init__(
        self,
        registry: AgentRegistry,
        audit_log: Optional[AuditLog] = None,
        text_generator: Optional[TextGenerator] = None,
        events: Optional[EventEmitter] = None
    ):
        self.registry = registry
        self.audit_log = audit_log
        self.text_generator = text_generator
        self.events = events or EventEmitter()
        self.is_running = False
        self._jobs: Dict[str, CronJob] = {}
        self._executions: Set[asyncio.Task] = set()

    async def start(self) -> None:
        self.is_running = True
        logger.info("scheduler_started")

    async def stop(self) -> None:
        """Stop every job timer; in-flight executions are left to finish."""
        handles = []
        for job in self._jobs.values():
            job.status = JobStatus.STOPPED
            if job.handle:
                job.handle.cancel()
                handles.append(job.handle)
                job.handle = None

        await asyncio.gather(*handles, return_exceptions=True)

        self.is_running = False
        safe_log_action(self.audit_log, self.name, "Scheduler stopped")
        logger.info("scheduler_stopped", jobs=len(self._jobs))

    async def schedule_task(
        self,
        agent_id: str,
        name: str,
        cron_expression: str,
        action: str,
        params: Optional[Dict[str, Any]] = None
    ) -> str:
        """Create a recurring job and return its ID."""
        if not self.is_running:
            raise SchedulerInactiveError()

        parse_cron(cron_expression)

        if agent_id not in self.registry:
            raise UnknownAgentError(agent_id)

        job = CronJob(
            job_id=f"task_{uuid.uuid4()}",
            agent_id=agent_id,
            name=name,
            cron_expression=cron_expression.strip(),
            action=action,
            params=dict(params or {}),
        )
        job.handle = asyncio.create_task(self._run_job(job))
        self._jobs[job.job_id] = job

        safe_log_action(
            self.audit_log,
            self.name,
            f"Scheduled new task: {name}",
            metadata={
                "taskId": job.job_id,
                "agentId": agent_id,
                "cronExpression": job.cron_expression,
                "action": action,
            }
        )
        logger.info(
            "schedule_added",
            job_id=job.job_id,
            name=name,
            agent=agent_id,
            cron_expression=job.cron_expression
        )
        self.events.emit(EventType.SCHEDULE_CREATED, job_id=job.job_id, agent_id=agent_id)

        return job.job_id

    async def remove_task(self, job_id: str) -> bool:
        """Stop a job's timer and forget it."""
        job = self._jobs.pop(job_id, None)
        if job is None:
            raise ScheduledJobNotFoundError(job_id)

        job.status = JobStatus.STOPPED
        if job.handle:
            job.handle.cancel()
            await asyncio.gather(job.handle, return_exceptions=True)
            job.handle = None

        safe_log_action(
            self.audit_log,
            self.name,
            f"Removed scheduled task: {job.name}",
            metadata={"taskId": job_id, "agentId": job.agent_id}
        )
        logger.info("schedule_removed", job_id=job_id, name=job.name)
        self.events.emit(EventType.SCHEDULE_REMOVED, job_id=job_id, agent_id=job.agent_id)

        return True

    async def execute_scheduled_task(
        self,
        job_id: str,
        agent_id: str,
        action: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Perform one firing of a job against the current agent instance."""
        params = params or {}
        job = self._jobs.get(job_id)
        job_name = job.name if job else job_id
        if job:
            job.last_run = datetime.utcnow()

        try:
            agent = self.registry.get(agent_id)
            if agent is None:
                raise UnknownAgentError(agent_id)

            if action == ScheduledAction.RUN:
                result = await call_handler(resolve_action(agent, "run", agent_id), params)
            elif action == ScheduledAction.STOP:
                result = await call_handler(resolve_action(agent, "stop", agent_id))
            elif action == ScheduledAction.CUSTOM:
                method = params.get("method")
                if not method:
                    raise UnsupportedActionError(agent_id, "custom")
                handler = resolve_action(agent, method, agent_id)
                result = await call_handler(handler, params.get("args", {}))
            else:
                raise UnsupportedActionError(agent_id, action)

        except Exception as e:
            if job:
                job.run_count += 1
                job.error_count += 1
                job.last_status = "failed"
                job.last_error = str(e)
            safe_log_action(
                self.audit_log,
                self.name,
                f"Failed to execute task: {job_name}",
                success=False,
                metadata={"taskId": job_id, "agentId": agent_id, "action": action, "error": str(e)}
            )
            raise

        if job:
            job.run_count += 1
            job.last_status = "completed"
            job.last_error = None
        safe_log_action(
            self.audit_log,
            self.name,
            f"Successfully executed task: {job_name}",
            metadata={"taskId": job_id, "agentId": agent_id, "action": action}
        )

        return result

    async def _run_job(self, job: CronJob) -> None:
        while True:
            try:
                await asyncio.sleep(self._delay_for(job))
            except asyncio.CancelledError:
                break

            if job.job_id not in self._jobs:
                break

            execution = asyncio.create_task(self._fire(job))
            self._executions.add(execution)
            execution.add_done_callback(self._executions.discard)

    async def _fire(self, job: CronJob) -> None:
        logger.info("scheduled_task_executing", job_id=job.job_id, name=job.name)
        self.events.emit(EventType.SCHEDULE_FIRED, job_id=job.job_id, agent_id=job.agent_id)
        try:
            await self.execute_scheduled_task(job.job_id, job.agent_id, job.action, job.params)
        except Exception as e:
            logger.error(
                "scheduled_task_failed",
                job_id=job.job_id,
                agent=job.agent_id,
                error=str(e)
            )

    def _delay_for(self, job: CronJob) -> float:
        """Seconds until the job's next fire time."""
        now = datetime.now().astimezone()
        job.next_run = croniter(str(parse_cron(job.cron_expression)), now).get_next(datetime)
        return max(0.0, (job.next_run - now).total_seconds())

    def get_task(self, job_id: str) -> Dict[str, Any]:
        job = self._jobs.get(job_id)
        if job is None:
            raise ScheduledJobNotFoundError(job_id)
        return job.to_dict()

    def get_all_tasks(self) -> List[Dict[str, Any]]:
        return [job.to_dict() for job in self._jobs.values()]

    def get_tasks_for_agent(self, agent_id: str) -> List[Dict[str, Any]]:
        return [job.to_dict() for job in self._jobs.values() if job.agent_id == agent_id]

    async def create_schedule_from_description(self, agent_id: str, description: str) -> str:
        """Ask the text generator for a cron expression and schedule a ``run`` job.

        The generated expression is untrusted and goes through the same
        validation as user input.
        """
        if self.text_generator is None:
            raise OrchestratorError("No text generator configured for natural language scheduling")

        prompt = (
            "Convert the following schedule description to a cron expression:\n"
            f'"{description}"\n\n'
            'Only return the cron expression in the format "* * * * *" and optionally '
            "a brief explanation.\n"
            'For example: "0 9 * * 1-5" for "every weekday at 9 AM".'
        )

        try:
            response = await self.text_generator.complete(prompt, max_tokens=100)
            match = _CRON_IN_TEXT.search(response or "")
            if not match:
                raise InvalidExpressionError(
                    str(response), "no cron expression found in generated text"
                )

            cron_expression = match.group(1).strip()
            parse_cron(cron_expression)

            return await self.schedule_task(
                agent_id,
                f"Auto-scheduled: {description}",
                cron_expression,
                ScheduledAction.RUN.value,
                {}
            )
        except Exception as e:
            logger.error(
                "schedule_from_description_failed",
                agent=agent_id,
                description=description,
                error=str(e)
            )
            raise
