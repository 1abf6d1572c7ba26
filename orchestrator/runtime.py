"""Wires the orchestrator services together."""

from typing import Optional

import structlog

from orchestrator.agent.registry import AgentRegistry
from orchestrator.ai.openrouter import OpenRouterConfig, OpenRouterProvider
from orchestrator.ai.provider import TextGenerator
from orchestrator.config import Settings, get_settings
from orchestrator.monitoring.events import EventEmitter
from orchestrator.monitoring.stats import StatusReporter
from orchestrator.scheduler.cron import CronScheduler
from orchestrator.scheduler.dispatcher import TaskDispatcher
from orchestrator.storage.audit import AuditLog, InMemoryAuditLog, JsonFileAuditLog
from orchestrator.workflow.engine import WorkflowEngine


logger = structlog.get_logger(__name__)


def build_audit_log(settings: Settings) -> AuditLog:
    if settings.memory_dir:
        return JsonFileAuditLog(settings.memory_dir)
    return InMemoryAuditLog()


class Services:
    """One registry, dispatcher, cron scheduler and workflow engine sharing an event bus.

    The text generator defaults to OpenRouter when an API key is configured;
    without one, natural language scheduling is unavailable.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        audit_log: Optional[AuditLog] = None,
        text_generator: Optional[TextGenerator] = None
    ):
        self.settings = settings or get_settings()
        self.events = EventEmitter()
        self.audit_log = audit_log or build_audit_log(self.settings)

        self._owned_provider: Optional[OpenRouterProvider] = None
        if text_generator is None:
            config = OpenRouterConfig.from_settings(self.settings)
            if config is not None:
                self._owned_provider = OpenRouterProvider(config)
                text_generator = self._owned_provider
        self.text_generator = text_generator

        self.registry = AgentRegistry(settings=self.settings)
        self.dispatcher = TaskDispatcher(
            self.registry,
            settings=self.settings,
            events=self.events
        )
        self.cron_scheduler = CronScheduler(
            self.registry,
            audit_log=self.audit_log,
            text_generator=self.text_generator,
            events=self.events
        )
        self.workflow_engine = WorkflowEngine(
            self.registry,
            audit_log=self.audit_log,
            settings=self.settings,
            events=self.events
        )
        self.reporter = StatusReporter(
            self.dispatcher,
            cron_scheduler=self.cron_scheduler,
            workflow_engine=self.workflow_engine
        )

    async def start(self) -> None:
        await self.dispatcher.start()
        await self.cron_scheduler.start()
        logger.info("services_started", agents=len(self.registry))

    async def stop(self) -> None:
        await self.cron_scheduler.stop()
        await self.workflow_engine.shutdown()
        await self.dispatcher.stop()
        if self._owned_provider is not None:
            await self._owned_provider.close()
        logger.info("services_stopped")
