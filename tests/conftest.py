"""
Pytest configuration and fixtures for the agent orchestrator.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from orchestrator.agent.base import BaseAgent, action
from orchestrator.agent.echo import EchoAgent
from orchestrator.agent.registry import AgentRegistry
from orchestrator.config import Settings
from orchestrator.storage.audit import InMemoryAuditLog


class FailingAgent(BaseAgent):
    """Agent whose actions always raise."""

    def __init__(self, name: str = "failing"):
        super().__init__(name)
        self.calls = 0

    @action()
    async def run(self, options=None):
        self.calls += 1
        raise RuntimeError("agent exploded")

    @action()
    async def explode(self, params=None, context=None):
        self.calls += 1
        raise RuntimeError("agent exploded")


@pytest.fixture
def settings(tmp_path):
    """Settings with fast polling and no files outside tmp_path."""
    return Settings(
        task_check_interval=0.01,
        wait_timeout=2.0,
        step_timeout=1.0,
        stats_file=None,
        memory_dir=None,
        openrouter_api_key=None,
    )


@pytest.fixture
def registry(settings):
    return AgentRegistry(settings=settings)


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


@pytest.fixture
def echo_agent():
    return EchoAgent("echo")


@pytest.fixture
def failing_agent():
    return FailingAgent("failing")
