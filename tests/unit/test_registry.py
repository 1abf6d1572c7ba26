"""
Tests for orchestrator.agent.registry and agent action dispatch tables.
"""

import pytest

from orchestrator.agent.base import BaseAgent, action, resolve_action
from orchestrator.agent.echo import EchoAgent
from orchestrator.agent.registry import AgentStatus
from orchestrator.errors import UnsupportedActionError


class ModelAgent(BaseAgent):
    preferred_provider = "anthropic"
    preferred_model = "claude"

    @action("review")
    def review_file(self, path):
        return f"reviewed {path}"

    def helper(self):
        return "not an action"


class PlainAgent:
    """Duck-typed agent without a dispatch table."""

    def run(self, options=None):
        return "ran"

    def _private(self):
        return "hidden"


class TestRegistration:

    def test_register_then_get_returns_instance(self, registry, echo_agent):
        registry.register("echo", echo_agent)

        assert registry.get("echo") is echo_agent
        assert "echo" in registry
        assert len(registry) == 1
        assert registry.get_record("echo").status == AgentStatus.IDLE

    def test_duplicate_registration_keeps_first(self, registry):
        first = EchoAgent("echo")
        second = EchoAgent("echo")

        registry.register("echo", first)
        registry.register("echo", second)

        assert registry.get("echo") is first
        assert len(registry) == 1

    def test_unregister_missing_is_noop(self, registry):
        registry.unregister("ghost")
        assert len(registry) == 0

    def test_unregister_removes_agent(self, registry, echo_agent):
        registry.register("echo", echo_agent)
        registry.unregister("echo")

        assert registry.get("echo") is None
        assert "echo" not in registry

    def test_list_agents_snapshot(self, registry, echo_agent):
        registry.register("echo", echo_agent)

        agents = registry.list_agents()

        assert agents[0]["name"] == "echo"
        assert agents[0]["type"] == "EchoAgent"
        assert agents[0]["status"] == "idle"
        assert agents[0]["actions"] == ["echo", "run", "stop", "summarize"]
        assert registry.names() == ["echo"]


class TestBusyIdle:

    def test_mark_busy_and_idle(self, registry, echo_agent):
        registry.register("echo", echo_agent)

        registry.mark_busy("echo", "task_1")
        record = registry.get_record("echo")
        assert record.status == AgentStatus.BUSY
        assert record.current_task_id == "task_1"
        assert not record.is_idle

        registry.mark_idle("echo")
        assert record.is_idle
        assert record.current_task_id is None
        assert record.last_activity is not None

    def test_mark_idle_tolerates_unregistered_agent(self, registry):
        registry.mark_idle("ghost")


class TestRecommendedModel:

    def test_defaults_from_settings(self, registry, settings, echo_agent):
        registry.register("echo", echo_agent)

        assert registry.get_recommended_model("echo") == {
            "provider": settings.default_provider,
            "model": settings.default_model,
        }

    def test_agent_preference_wins(self, registry):
        registry.register("model", ModelAgent("model"))

        assert registry.get_recommended_model("model") == {
            "provider": "anthropic",
            "model": "claude",
        }

    def test_unknown_agent_gets_defaults(self, registry, settings):
        assert registry.get_recommended_model("ghost")["model"] == settings.default_model


class TestDispatchTables:

    def test_declared_actions_only(self):
        agent = ModelAgent("model")

        assert set(agent.actions) == {"review"}
        assert agent.get_action("review")("a.py") == "reviewed a.py"
        with pytest.raises(UnsupportedActionError):
            agent.get_action("helper")

    def test_actions_inherited(self):
        agent = EchoAgent("echo")
        assert set(agent.actions) >= {"run", "stop", "echo", "summarize"}

    def test_resolve_action_on_plain_object(self):
        agent = PlainAgent()

        assert resolve_action(agent, "run", "plain")() == "ran"
        with pytest.raises(UnsupportedActionError):
            resolve_action(agent, "_private", "plain")
        with pytest.raises(UnsupportedActionError):
            resolve_action(agent, "missing", "plain")

    def test_plain_objects_list_no_actions(self, registry):
        registry.register("plain", object())

        assert registry.list_agents()[0]["actions"] is None
