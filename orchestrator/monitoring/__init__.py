"""Monitoring module: logging, events and stats."""

from orchestrator.monitoring.events import EventEmitter, EventType, OrchestratorEvent
from orchestrator.monitoring.stats import DispatcherStats, StatusReporter

__all__ = [
    "DispatcherStats",
    "EventEmitter",
    "EventType",
    "OrchestratorEvent",
    "StatusReporter",
]
