"""Registry of named agents and their busy/idle state."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional

import structlog

from orchestrator.config import Settings, get_settings


logger = structlog.get_logger(__name__)


class AgentStatus(str, Enum):
    """Agent availability."""
    IDLE = "idle"
    BUSY = "busy"


@dataclass
class AgentRecord:
    """Registration record for an agent."""
    name: str
    instance: Any
    status: AgentStatus = AgentStatus.IDLE
    current_task_id: Optional[str] = None
    registered_at: datetime = field(default_factory=datetime.utcnow)
    last_activity: Optional[datetime] = None

    @property
    def is_idle(self) -> bool:
        return self.status == AgentStatus.IDLE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        actions = getattr(self.instance, "actions", None)
        return {
            "name": self.name,
            "type": type(self.instance).__name__,
            "actions": sorted(actions) if isinstance(actions, Mapping) else None,
            "status": self.status.value,
            "current_task_id": self.current_task_id,
            "registered_at": self.registered_at.isoformat(),
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
            "active": getattr(self.instance, "active", None),
        }


class AgentRegistry:
    """Tracks registered agents.

    Status changes go through :meth:`mark_busy` and :meth:`mark_idle`, which
    only the task dispatcher calls.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._agents: Dict[str, AgentRecord] = {}

    def register(self, name: str, instance: Any) -> None:
        """Register an agent under ``name``; existing names are left untouched."""
        if name in self._agents:
            logger.warning("agent_already_registered", agent=name)
            return

        self._agents[name] = AgentRecord(name=name, instance=instance)
        logger.info("agent_registered", agent=name, type=type(instance).__name__)

    def unregister(self, name: str) -> None:
        if name not in self._agents:
            logger.warning("agent_not_registered", agent=name)
            return

        del self._agents[name]
        logger.info("agent_unregistered", agent=name)

    def get(self, name: str) -> Optional[Any]:
        """Get the agent instance registered under ``name``."""
        record = self._agents.get(name)
        return record.instance if record else None

    def get_record(self, name: str) -> Optional[AgentRecord]:
        return self._agents.get(name)

    def list_agents(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self._agents.values()]

    def names(self) -> List[str]:
        return list(self._agents)

    def get_recommended_model(self, name: str) -> Dict[str, str]:
        """Provider and model to use for ``name``.

        The agent's own ``preferred_provider``/``preferred_model`` win when
        both are set; otherwise the configured defaults apply.
        """
        default = {
            "provider": self.settings.default_provider,
            "model": self.settings.default_model,
        }

        record = self._agents.get(name)
        if record is None:
            return default

        provider = getattr(record.instance, "preferred_provider", None)
        model = getattr(record.instance, "preferred_model", None)
        if provider and model:
            return {"provider": provider, "model": model}

        return default

    def mark_busy(self, name: str, task_id: str) -> None:
        record = self._agents[name]
        record.status = AgentStatus.BUSY
        record.current_task_id = task_id
        record.last_activity = datetime.utcnow()

    def mark_idle(self, name: str) -> None:
        # The agent may have been unregistered while its task was running
        record = self._agents.get(name)
        if record is None:
            return
        record.status = AgentStatus.IDLE
        record.current_task_id = None
        record.last_activity = datetime.utcnow()

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self) -> Iterator[AgentRecord]:
        return iter(list(self._agents.values()))
