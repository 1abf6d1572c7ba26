"""Agent contract and registry."""

from orchestrator.agent.base import BaseAgent, action
from orchestrator.agent.echo import EchoAgent
from orchestrator.agent.registry import AgentRecord, AgentRegistry, AgentStatus

__all__ = [
    "AgentRecord",
    "AgentRegistry",
    "AgentStatus",
    "BaseAgent",
    "EchoAgent",
    "action",
]
