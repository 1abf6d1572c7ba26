"""Audit log backends for agent activity.

Agents and orchestration components mirror what they do into an audit log
(``log_action``). The log is best effort: callers wrap it with
:func:`safe_log_action` so that a failing backend never aborts the caller.
"""

import json
import re
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

import structlog


logger = structlog.get_logger(__name__)


def _entry(message: str, success: bool, metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "timestamp": datetime.utcnow().isoformat(),
        "action": message,
        "success": success,
        "metadata": metadata or {},
    }


class AuditLog(ABC):
    """Abstract base class for audit log backends."""

    @abstractmethod
    def log_action(
        self,
        source: str,
        message: str,
        success: bool = True,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Record an action performed by ``source``."""
        pass

    @abstractmethod
    def get_actions(self, source: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return recorded actions for ``source``, oldest first."""
        pass


class InMemoryAuditLog(AuditLog):
    """Bounded in-memory audit log, the default for tests and local runs."""

    def __init__(self, max_entries: int = 1000):
        self.max_entries = max_entries
        self._actions: Dict[str, Deque[Dict[str, Any]]] = {}

    def log_action(
        self,
        source: str,
        message: str,
        success: bool = True,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        actions = self._actions.setdefault(source, deque(maxlen=self.max_entries))
        actions.append(_entry(message, success, metadata))

    def get_actions(self, source: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        actions = list(self._actions.get(source, []))
        return actions[-limit:] if limit else actions

    def sources(self) -> List[str]:
        return sorted(self._actions)


class JsonFileAuditLog(AuditLog):
    """One JSON blob per source under ``directory``.

    Each file holds ``{"source": ..., "actions": [...]}`` and is rewritten
    on every call; the newest ``max_entries`` actions are kept.
    """

    _UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, directory: str, max_entries: int = 1000):
        self.directory = Path(directory)
        self.max_entries = max_entries
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, source: str) -> Path:
        return self.directory / f"{self._UNSAFE.sub('_', source)}.json"

    def _load(self, source: str) -> Dict[str, Any]:
        path = self._path(source)
        if not path.exists():
            return {"source": source, "actions": []}
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def log_action(
        self,
        source: str,
        message: str,
        success: bool = True,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        blob = self._load(source)
        blob["actions"].append(_entry(message, success, metadata))
        blob["actions"] = blob["actions"][-self.max_entries:]
        blob["updated_at"] = datetime.utcnow().isoformat()

        with open(self._path(source), "w", encoding="utf-8") as f:
            json.dump(blob, f, indent=2, default=str)

    def get_actions(self, source: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        actions = self._load(source)["actions"]
        return actions[-limit:] if limit else actions


def safe_log_action(
    audit_log: Optional[AuditLog],
    source: str,
    message: str,
    success: bool = True,
    metadata: Optional[Dict[str, Any]] = None
) -> None:
    """Write to the audit log, logging and swallowing backend failures."""
    if audit_log is None:
        return
    try:
        audit_log.log_action(source, message, success, metadata)
    except Exception as e:
        logger.warning(
            "audit_log_failed",
            source=source,
            message=message,
            error=str(e)
        )
