"""Event names and a small in-process emitter for orchestration events."""

import asyncio
import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Union

import structlog


logger = structlog.get_logger(__name__)


class EventType(str, Enum):
    """Events emitted by the dispatcher, cron scheduler and workflow engine."""
    # Task queue
    TASK_QUEUED = "task:queued"
    TASK_STARTED = "task:started"
    TASK_COMPLETED = "task:completed"

    # Cron jobs
    SCHEDULE_CREATED = "schedule:created"
    SCHEDULE_REMOVED = "schedule:removed"
    SCHEDULE_FIRED = "schedule:fired"

    # Workflow runs
    WORKFLOW_STARTED = "workflow:started"
    WORKFLOW_STEP_COMPLETED = "workflow:step:completed"
    WORKFLOW_STEP_ERROR = "workflow:step:error"
    WORKFLOW_COMPLETED = "workflow:completed"
    WORKFLOW_ERROR = "workflow:error"
    WORKFLOW_STOPPED = "workflow:stopped"


@dataclass
class OrchestratorEvent:
    """Event payload delivered to subscribers."""
    event_type: EventType
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


EventHandler = Callable[[OrchestratorEvent], Any]


class EventEmitter:
    """Fan out events to registered handlers.

    Handlers may be plain callables or coroutine functions. Coroutine
    handlers are scheduled on the running loop so that emitting never
    blocks the caller; handler failures are logged and never propagate.
    """

    def __init__(self) -> None:
        self._handlers: Dict[EventType, List[EventHandler]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()

    def on(self, event_type: Union[EventType, str], handler: EventHandler) -> None:
        """Register an event handler."""
        self._handlers[EventType(event_type)].append(handler)

    def off(self, event_type: Union[EventType, str], handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        handlers = self._handlers.get(EventType(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_type: EventType, **data: Any) -> OrchestratorEvent:
        event = OrchestratorEvent(event_type=event_type, data=data)

        for handler in list(self._handlers.get(event_type, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._handler_done)
            except Exception as e:
                logger.error(
                    "event_handler_error",
                    event_type=event_type.value,
                    error=str(e)
                )

        return event

    def _handler_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error: Optional[BaseException] = task.exception()
        if error is not None:
            logger.error("event_handler_error", error=str(error))
