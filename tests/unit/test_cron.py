"""
Tests for orchestrator.scheduler.cron.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from orchestrator.errors import (
    InvalidExpressionError,
    OrchestratorError,
    ScheduledJobNotFoundError,
    SchedulerInactiveError,
    UnknownAgentError,
    UnsupportedActionError,
)
from orchestrator.monitoring.events import EventType
from orchestrator.scheduler.cron import (
    CronScheduler,
    next_runs,
    parse_cron,
    validate_cron_expression,
)


async def wait_until(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def scheduler(registry, audit_log, monkeypatch):
    """Scheduler whose jobs fire every 10ms regardless of expression."""
    cron = CronScheduler(registry, audit_log=audit_log)
    monkeypatch.setattr(cron, "_delay_for", lambda job: 0.01)
    return cron


# ============================================================================
# EXPRESSIONS
# ============================================================================

class TestCronExpressions:

    def test_parse_five_fields(self):
        parsed = parse_cron("*/5 9-17 * * 1-5")

        assert parsed.minute == "*/5"
        assert parsed.hour == "9-17"
        assert parsed.weekday == "1-5"
        assert str(parsed) == "*/5 9-17 * * 1-5"

    def test_special_aliases(self):
        assert str(parse_cron("@hourly")) == "0 * * * *"
        assert str(parse_cron("@daily")) == "0 0 * * *"

    @pytest.mark.parametrize("expression", ["", "* * * *", "61 * * * *", "not a cron at all"])
    def test_invalid_expressions(self, expression):
        with pytest.raises(InvalidExpressionError):
            parse_cron(expression)

    def test_validate_returns_tuple(self):
        assert validate_cron_expression("0 9 * * *") == (True, None)
        valid, message = validate_cron_expression("0 25 * * *")
        assert not valid
        assert "0 25 * * *" in message

    def test_next_runs(self):
        base = datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)

        runs = next_runs("0 9 * * *", n=3, base_time=base)

        assert [r.day for r in runs] == [1, 2, 3]
        assert all(r.hour == 9 and r.minute == 0 for r in runs)


# ============================================================================
# SCHEDULING
# ============================================================================

class TestScheduleTask:

    @pytest.mark.asyncio
    async def test_requires_running_scheduler(self, scheduler, registry, echo_agent):
        registry.register("echo", echo_agent)

        with pytest.raises(SchedulerInactiveError):
            await scheduler.schedule_task("echo", "job", "* * * * *", "run")

    @pytest.mark.asyncio
    async def test_rejects_invalid_expression(self, scheduler, registry, echo_agent):
        registry.register("echo", echo_agent)
        await scheduler.start()
        try:
            with pytest.raises(InvalidExpressionError):
                await scheduler.schedule_task("echo", "job", "every minute", "run")
            assert scheduler.get_all_tasks() == []
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_rejects_unknown_agent(self, scheduler):
        await scheduler.start()
        try:
            with pytest.raises(UnknownAgentError):
                await scheduler.schedule_task("ghost", "job", "* * * * *", "run")
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_job_fires_repeatedly(self, scheduler, registry, audit_log, echo_agent):
        registry.register("echo", echo_agent)
        fired = []
        scheduler.events.on(EventType.SCHEDULE_FIRED, lambda e: fired.append(e.data["job_id"]))
        await scheduler.start()
        try:
            job_id = await scheduler.schedule_task(
                "echo", "heartbeat", "* * * * *", "run", {"mode": "quick"}
            )
            await wait_until(lambda: scheduler.get_task(job_id)["run_count"] >= 2)

            job = scheduler.get_task(job_id)
            assert job["last_status"] == "completed"
            assert job["last_run"] is not None
            assert echo_agent.history[0]["echo"] == {"mode": "quick"}
            assert fired[0] == job_id
        finally:
            await scheduler.stop()

        messages = [a["action"] for a in audit_log.get_actions("scheduler")]
        assert "Scheduled new task: heartbeat" in messages
        assert "Successfully executed task: heartbeat" in messages
        assert "Scheduler stopped" in messages

    @pytest.mark.asyncio
    async def test_throwing_agent_keeps_firing(self, scheduler, registry, audit_log, failing_agent):
        registry.register("failing", failing_agent)
        await scheduler.start()
        try:
            job_id = await scheduler.schedule_task("failing", "doomed", "* * * * *", "run")
            await wait_until(lambda: failing_agent.calls >= 3)

            job = scheduler.get_task(job_id)
            assert job["error_count"] >= 2
            assert job["last_status"] == "failed"
            assert job["last_error"] == "agent exploded"
        finally:
            await scheduler.stop()

        failures = [a for a in audit_log.get_actions("scheduler") if not a["success"]]
        assert failures[0]["action"] == "Failed to execute task: doomed"
        assert failures[0]["metadata"]["error"] == "agent exploded"

    @pytest.mark.asyncio
    async def test_remove_task_stops_firing(self, scheduler, registry, echo_agent):
        registry.register("echo", echo_agent)
        await scheduler.start()
        try:
            job_id = await scheduler.schedule_task("echo", "job", "* * * * *", "run")
            await wait_until(lambda: len(echo_agent.history) >= 1)

            assert await scheduler.remove_task(job_id) is True
            await asyncio.sleep(0.02)
            fired = len(echo_agent.history)
            await asyncio.sleep(0.05)

            assert len(echo_agent.history) == fired
            assert scheduler.get_all_tasks() == []
            with pytest.raises(ScheduledJobNotFoundError):
                await scheduler.remove_task(job_id)
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_tasks_for_agent(self, scheduler, registry, echo_agent):
        registry.register("echo", echo_agent)
        registry.register("other", echo_agent)
        await scheduler.start()
        try:
            await scheduler.schedule_task("echo", "a", "@hourly", "run")
            await scheduler.schedule_task("other", "b", "@daily", "run")

            jobs = scheduler.get_tasks_for_agent("echo")
            assert [j["name"] for j in jobs] == ["a"]
            assert len(scheduler.get_all_tasks()) == 2
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_all_jobs(self, scheduler, registry, echo_agent):
        registry.register("echo", echo_agent)
        await scheduler.start()
        job_id = await scheduler.schedule_task("echo", "job", "* * * * *", "run")

        await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.get_task(job_id)["status"] == "stopped"


# ============================================================================
# EXECUTION
# ============================================================================

class TestExecuteScheduledTask:

    @pytest.mark.asyncio
    async def test_stop_action(self, scheduler, registry, echo_agent):
        echo_agent.active = True
        registry.register("echo", echo_agent)

        await scheduler.execute_scheduled_task("manual", "echo", "stop", {})

        assert echo_agent.active is False

    @pytest.mark.asyncio
    async def test_custom_action_calls_method_with_args(self, scheduler, registry, echo_agent):
        registry.register("echo", echo_agent)

        result = await scheduler.execute_scheduled_task(
            "manual", "echo", "custom", {"method": "echo", "args": {"text": "hi"}}
        )

        assert result["echo"] == {"text": "hi"}

    @pytest.mark.asyncio
    async def test_custom_without_method_fails(self, scheduler, registry, echo_agent):
        registry.register("echo", echo_agent)

        with pytest.raises(UnsupportedActionError):
            await scheduler.execute_scheduled_task("manual", "echo", "custom", {})

    @pytest.mark.asyncio
    async def test_unknown_action_fails(self, scheduler, registry, echo_agent):
        registry.register("echo", echo_agent)

        with pytest.raises(UnsupportedActionError):
            await scheduler.execute_scheduled_task("manual", "echo", "dance", {})

    @pytest.mark.asyncio
    async def test_agent_resolved_at_fire_time(self, scheduler):
        with pytest.raises(UnknownAgentError):
            await scheduler.execute_scheduled_task("manual", "ghost", "run", {})


# ============================================================================
# NATURAL LANGUAGE SCHEDULING
# ============================================================================

class TestScheduleFromDescription:

    @pytest.mark.asyncio
    async def test_extracts_and_schedules(self, registry, audit_log, echo_agent):
        generator = AsyncMock()
        generator.complete.return_value = '"0 9 * * 1-5" runs every weekday at 9 AM'
        scheduler = CronScheduler(registry, audit_log=audit_log, text_generator=generator)
        registry.register("echo", echo_agent)
        await scheduler.start()
        try:
            job_id = await scheduler.create_schedule_from_description("echo", "weekdays at nine")

            job = scheduler.get_task(job_id)
            assert job["cron_expression"] == "0 9 * * 1-5"
            assert job["action"] == "run"
            assert job["name"] == "Auto-scheduled: weekdays at nine"
            assert "weekdays at nine" in generator.complete.call_args.args[0]
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_generated_text_without_expression(self, registry, echo_agent):
        generator = AsyncMock()
        generator.complete.return_value = "I cannot help with that"
        scheduler = CronScheduler(registry, text_generator=generator)
        registry.register("echo", echo_agent)
        await scheduler.start()
        try:
            with pytest.raises(InvalidExpressionError):
                await scheduler.create_schedule_from_description("echo", "sometimes")
            assert scheduler.get_all_tasks() == []
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_generated_expression_is_validated(self, registry, echo_agent):
        generator = AsyncMock()
        generator.complete.return_value = "99 99 * * *"
        scheduler = CronScheduler(registry, text_generator=generator)
        registry.register("echo", echo_agent)
        await scheduler.start()
        try:
            with pytest.raises(InvalidExpressionError):
                await scheduler.create_schedule_from_description("echo", "never")
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_requires_text_generator(self, scheduler):
        with pytest.raises(OrchestratorError):
            await scheduler.create_schedule_from_description("echo", "daily")
