"""Agent contract and per-agent action dispatch tables."""

import inspect
from typing import Any, Callable, Dict, Optional

import structlog

from orchestrator.errors import UnsupportedActionError


logger = structlog.get_logger(__name__)

_ACTION_ATTR = "__agent_action__"


def action(name: Optional[str] = None) -> Callable[[Callable], Callable]:
    """Mark an agent method as an action handler.

    The method is added to the dispatch table of its class under ``name``
    (the method name when omitted).
    """
    def decorator(func: Callable) -> Callable:
        setattr(func, _ACTION_ATTR, name or func.__name__)
        return func
    return decorator


async def call_handler(handler: Callable, *args: Any, **kwargs: Any) -> Any:
    """Call a sync or async handler and return its result."""
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


class BaseAgent:
    """Base class for agents driven by the orchestration core.

    Subclasses declare their capabilities with :func:`action`::

        class QAAgent(BaseAgent):
            @action()
            async def run(self, options):
                ...

            @action("review")
            async def review_file(self, path):
                ...

    ``get_action`` resolves a name against that table only, so an agent
    never exposes helpers that were not declared as actions.
    """

    _actions: Dict[str, str] = {}

    preferred_provider: Optional[str] = None
    preferred_model: Optional[str] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        table: Dict[str, str] = {}
        for klass in reversed(cls.__mro__):
            for attr_name, value in vars(klass).items():
                action_name = getattr(value, _ACTION_ATTR, None)
                if action_name:
                    table[action_name] = attr_name
        cls._actions = table

    def __init__(self, name: str):
        self.name = name
        self.active = False

    @property
    def actions(self) -> Dict[str, Callable]:
        return {
            action_name: getattr(self, attr_name)
            for action_name, attr_name in self._actions.items()
        }

    def get_action(self, action_name: str) -> Callable:
        """Return the bound handler for ``action_name``."""
        attr_name = self._actions.get(action_name)
        if attr_name is None:
            raise UnsupportedActionError(self.name, action_name)
        return getattr(self, attr_name)

    async def init(self) -> None:
        """Activate the agent."""
        self.active = True
        logger.info("agent_initialized", agent=self.name)

    async def shutdown(self) -> None:
        """Deactivate the agent."""
        self.active = False
        logger.info("agent_shutdown", agent=self.name)

    async def handle_workflow_action(
        self,
        action_name: str,
        params: Dict[str, Any],
        context: Dict[str, Any]
    ) -> Any:
        """Run an action as a workflow step.

        Handlers receive the step params and the run context as keywords and
        may return ``{"data": ..., "context": {...}}`` to contribute to the
        run context.
        """
        handler = self.get_action(action_name)
        return await call_handler(handler, params=params, context=context)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def resolve_action(agent: Any, action_name: str, agent_name: Optional[str] = None) -> Callable:
    """Look up ``action_name`` on any agent object.

    Agents with a dispatch table (``get_action``) are resolved through it.
    Other objects are accepted when they expose a public callable with that
    name.
    """
    label = agent_name or getattr(agent, "name", type(agent).__name__)

    get_action = getattr(agent, "get_action", None)
    if callable(get_action):
        return get_action(action_name)

    if not action_name or action_name.startswith("_"):
        raise UnsupportedActionError(label, action_name)

    handler = getattr(agent, action_name, None)
    if not callable(handler):
        raise UnsupportedActionError(label, action_name)
    return handler
