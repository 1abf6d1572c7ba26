"""Priority task records and the dispatch queue ordering."""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union
import uuid


class Priority(str, Enum):
    """Task priority classes."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class TaskStatus(str, Enum):
    """Task lifecycle: pending -> running -> completed | failed."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.RUNNING},
    TaskStatus.RUNNING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}


TaskParameters = Union[Dict[str, Any], Sequence[Any], None]


@dataclass
class Task:
    """A queued agent invocation."""
    agent_name: str
    action_type: str
    parameters: TaskParameters = None
    priority: Priority = Priority.NORMAL
    task_id: str = field(default_factory=lambda: f"task_{uuid.uuid4()}")
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Any = None
    error: Optional[str] = None
    model: Optional[Dict[str, str]] = None

    def transition(self, status: TaskStatus) -> None:
        """Move to ``status``; illegal transitions raise ``ValueError``."""
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(
                f"Task {self.task_id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if status == TaskStatus.RUNNING:
            self.started_at = datetime.utcnow()
        elif status.is_terminal:
            self.completed_at = datetime.utcnow()

    def positional_args(self) -> List[Any]:
        """Parameters as positional arguments for the action handler.

        Mapping values are passed in insertion order, sequences as-is.
        """
        if self.parameters is None:
            return []
        if isinstance(self.parameters, dict):
            return list(self.parameters.values())
        if isinstance(self.parameters, (str, bytes)):
            return [self.parameters]
        return list(self.parameters)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a detached dictionary snapshot."""
        return {
            "id": self.task_id,
            "agent_name": self.agent_name,
            "action_type": self.action_type,
            "parameters": copy.deepcopy(self.parameters),
            "priority": self.priority.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "result": copy.deepcopy(self.result),
            "error": self.error,
            "model": dict(self.model) if self.model else None,
        }


class TaskQueue:
    """Ordered task IDs with class-based insertion.

    - ``critical`` goes to the very front, so among criticals the newest is
      served first;
    - ``high`` goes right after the contiguous run of criticals at the front;
    - ``normal`` and ``low`` are appended.

    Priorities are kept alongside the IDs so that insertion does not need
    to consult the task table.
    """

    def __init__(self) -> None:
        self._entries: List[str] = []
        self._priorities: Dict[str, Priority] = {}

    def push(self, task_id: str, priority: Union[Priority, str]) -> int:
        """Insert ``task_id`` and return the index it landed at."""
        priority = Priority(priority)

        if priority == Priority.CRITICAL:
            index = 0
        elif priority == Priority.HIGH:
            index = 0
            while (
                index < len(self._entries)
                and self._priorities[self._entries[index]] == Priority.CRITICAL
            ):
                index += 1
        else:
            index = len(self._entries)

        self._entries.insert(index, task_id)
        self._priorities[task_id] = priority
        return index

    def peek(self) -> Optional[str]:
        return self._entries[0] if self._entries else None

    def remove(self, task_id: str) -> bool:
        """Remove ``task_id`` wherever it sits."""
        if task_id not in self._priorities:
            return False
        self._entries.remove(task_id)
        del self._priorities[task_id]
        return True

    def snapshot(self) -> List[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._priorities

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))
