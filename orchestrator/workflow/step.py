"""A single workflow step: one agent action under a timeout."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

import structlog

from orchestrator.agent.base import call_handler
from orchestrator.agent.registry import AgentRegistry
from orchestrator.errors import (
    TimeoutExceededError,
    UnregisteredAgentError,
    UnsupportedActionError,
    WorkflowDefinitionError,
)


logger = structlog.get_logger(__name__)

DEFAULT_STEP_TIMEOUT = 60.0

StepCondition = Callable[["StepOutcome", Dict[str, Any]], Any]


@dataclass
class StepOutcome:
    """What a step hands back to the run: result data and a partial context."""
    data: Any = None
    context: Optional[Dict[str, Any]] = None

    @classmethod
    def from_result(cls, result: Any) -> "StepOutcome":
        """Normalise an agent's return value.

        A mapping carrying ``"data"`` or ``"context"`` is taken apart, other
        keys are ignored; anything else is treated as data with no context
        contribution.
        """
        if isinstance(result, StepOutcome):
            return result
        if isinstance(result, Mapping) and ("data" in result or "context" in result):
            context = result.get("context")
            if context is not None and not isinstance(context, Mapping):
                raise TypeError("Step context must be a mapping")
            return cls(data=result.get("data"), context=dict(context) if context else None)
        return cls(data=result)


@dataclass
class WorkflowStep:
    """Configuration of one workflow step."""
    id: str
    agent_id: str
    action: str
    params: Dict[str, Any] = field(default_factory=dict)
    condition: Optional[StepCondition] = None
    on_success: Optional[str] = None
    on_failure: Optional[str] = None
    description: str = ""
    timeout: float = DEFAULT_STEP_TIMEOUT

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        default_timeout: float = DEFAULT_STEP_TIMEOUT
    ) -> "WorkflowStep":
        """Build a step from a config mapping (snake_case or camelCase keys)."""
        if isinstance(config, WorkflowStep):
            return config

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in config and config[key] is not None:
                    return config[key]
            return default

        step_id = pick("id")
        agent_id = pick("agent_id", "agentId", "agent")
        action = pick("action")
        missing = [
            name for name, value in
            (("id", step_id), ("agent_id", agent_id), ("action", action))
            if not value
        ]
        if missing:
            raise WorkflowDefinitionError(f"Step is missing {', '.join(missing)}: {dict(config)}")

        condition = pick("condition")
        if condition is not None and not callable(condition):
            raise WorkflowDefinitionError(f"Condition of step {step_id} is not callable")

        try:
            timeout = float(pick("timeout", default=default_timeout))
        except (TypeError, ValueError):
            raise WorkflowDefinitionError(f"Timeout of step {step_id} must be a number") from None
        if timeout <= 0:
            raise WorkflowDefinitionError(f"Timeout of step {step_id} must be positive")

        return cls(
            id=str(step_id),
            agent_id=str(agent_id),
            action=str(action),
            params=dict(pick("params", default={})),
            condition=condition,
            on_success=pick("on_success", "onSuccess"),
            on_failure=pick("on_failure", "onFailure"),
            description=pick("description", default=""),
            timeout=timeout,
        )

    async def execute(self, context: Dict[str, Any], registry: AgentRegistry) -> StepOutcome:
        """Run the step's action against its agent."""
        logger.info("step_executing", step_id=self.id, action=self.action, agent=self.agent_id)

        agent = registry.get(self.agent_id)
        if agent is None:
            raise UnregisteredAgentError(self.agent_id, f"Agent not found: {self.agent_id}")

        handler = getattr(agent, "handle_workflow_action", None)
        if not callable(handler):
            raise UnsupportedActionError(self.agent_id, "handle_workflow_action")

        if not getattr(agent, "active", True) and self.action != "init":
            logger.info("step_agent_init", step_id=self.id, agent=self.agent_id)
            await call_handler(agent.init)

        try:
            result = await asyncio.wait_for(
                call_handler(handler, self.action, dict(self.params), context),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise TimeoutExceededError(
                f"Timeout after {self.timeout}s in step {self.id}"
            ) from None

        logger.info("step_completed", step_id=self.id)
        return StepOutcome.from_result(result)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "action": self.action,
            "params": self.params,
            "description": self.description,
            "timeout": self.timeout,
            "has_condition": self.condition is not None,
            "on_success": self.on_success,
            "on_failure": self.on_failure,
        }

    def __str__(self) -> str:
        return f"WorkflowStep {{id: {self.id}, agent: {self.agent_id}, action: {self.action}}}"
