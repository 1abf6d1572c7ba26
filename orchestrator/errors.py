"""Exception hierarchy for the orchestration core."""

from typing import Any, Dict, Optional


class OrchestratorError(Exception):
    """Base class for all orchestration errors.

    ``status_code`` and ``code`` are used by the REST layer to build the
    ``{"error": ..., "message": ...}`` response body.
    """

    status_code: int = 500
    code: str = "orchestrator_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert to an API error body."""
        return {"error": self.code, "message": self.message}


class UnregisteredAgentError(OrchestratorError):
    """Action target is not a registered agent."""

    status_code = 404
    code = "unregistered_agent"

    def __init__(self, agent_name: str, message: Optional[str] = None):
        super().__init__(message or f"Agent {agent_name} is not registered")
        self.agent_name = agent_name


class UnknownAgentError(UnregisteredAgentError):
    """Scheduled job refers to an agent that cannot be resolved."""

    code = "unknown_agent"

    def __init__(self, agent_name: str):
        super().__init__(agent_name, f"Agent {agent_name} not found")


class ManagerInactiveError(UnregisteredAgentError):
    """Task submitted while the dispatcher is stopped."""

    status_code = 409
    code = "manager_inactive"

    def __init__(self, agent_name: str):
        super().__init__(agent_name, "Agent manager is not active")


class UnsupportedActionError(OrchestratorError):
    """Agent has no handler for the requested action."""

    status_code = 400
    code = "unsupported_action"

    def __init__(self, agent_name: str, action: str):
        super().__init__(f"Action {action} is not supported by agent {agent_name}")
        self.agent_name = agent_name
        self.action = action


class InvalidExpressionError(OrchestratorError):
    """Malformed cron expression."""

    status_code = 400
    code = "invalid_expression"

    def __init__(self, expression: str, reason: Optional[str] = None):
        message = f"Invalid cron expression: {expression}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.expression = expression


class TimeoutExceededError(OrchestratorError, TimeoutError):
    """A step or a wait exceeded its time bound."""

    status_code = 504
    code = "timeout"


class StepExecutionError(OrchestratorError):
    """Wraps an error raised inside a task or workflow step body."""

    code = "execution_failed"


class NotFoundError(OrchestratorError):
    """Referenced object does not exist."""

    status_code = 404
    code = "not_found"


class TaskNotFoundError(NotFoundError):
    code = "task_not_found"

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class ScheduledJobNotFoundError(NotFoundError):
    code = "scheduled_task_not_found"

    def __init__(self, job_id: str):
        super().__init__(f"Scheduled task {job_id} not found")
        self.job_id = job_id


class WorkflowNotFoundError(NotFoundError):
    code = "workflow_not_found"

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class RunNotFoundError(NotFoundError):
    code = "run_not_found"

    def __init__(self, run_id: str):
        super().__init__(f"Workflow run not found: {run_id}")
        self.run_id = run_id


class WorkflowDefinitionError(OrchestratorError):
    """Workflow configuration cannot be turned into steps."""

    status_code = 400
    code = "invalid_workflow"


class SchedulerInactiveError(OrchestratorError):
    """Cron job submitted while the scheduler is stopped."""

    status_code = 409
    code = "scheduler_inactive"

    def __init__(self) -> None:
        super().__init__("Scheduler is not running")
