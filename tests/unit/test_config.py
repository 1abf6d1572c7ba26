"""
Tests for orchestrator.config and the service container.
"""

from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from orchestrator.ai.openrouter import OpenRouterProvider
from orchestrator.config import Settings
from orchestrator.runtime import Services
from orchestrator.storage.audit import InMemoryAuditLog, JsonFileAuditLog


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ORCHESTRATOR_TASK_CHECK_INTERVAL", raising=False)
        settings = Settings(_env_file=None)

        assert settings.task_check_interval == 5.0
        assert settings.step_timeout == 60.0
        assert settings.default_provider == "openai"

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("ORCHESTRATOR_TASK_CHECK_INTERVAL", "0.5")
        monkeypatch.setenv("ORCHESTRATOR_DEFAULT_MODEL", "gpt-4o-mini")

        settings = Settings(_env_file=None)

        assert settings.task_check_interval == 0.5
        assert settings.default_model == "gpt-4o-mini"

    def test_intervals_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, task_check_interval=0)


class TestServices:

    def test_wiring_shares_registry_and_events(self, settings):
        services = Services(settings)

        assert services.dispatcher.registry is services.registry
        assert services.cron_scheduler.registry is services.registry
        assert services.workflow_engine.registry is services.registry
        assert services.dispatcher.events is services.events
        assert services.reporter.workflow_engine is services.workflow_engine
        assert isinstance(services.audit_log, InMemoryAuditLog)
        assert services.text_generator is None

    def test_memory_dir_selects_file_audit_log(self, settings, tmp_path):
        settings.memory_dir = str(tmp_path)

        assert isinstance(Services(settings).audit_log, JsonFileAuditLog)

    def test_openrouter_key_enables_generator(self, settings):
        settings.openrouter_api_key = "sk-test"

        services = Services(settings)

        assert isinstance(services.text_generator, OpenRouterProvider)
        assert services.cron_scheduler.text_generator is services.text_generator

    @pytest.mark.asyncio
    async def test_start_and_stop(self, settings):
        generator = AsyncMock()
        services = Services(settings, text_generator=generator)

        await services.start()
        assert services.dispatcher.active
        assert services.cron_scheduler.is_running

        await services.stop()
        assert not services.dispatcher.active
        assert not services.cron_scheduler.is_running
