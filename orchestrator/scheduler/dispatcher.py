"""Priority task queue dispatcher gated on agent availability."""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Union

import structlog

from orchestrator.agent.base import call_handler, resolve_action
from orchestrator.agent.registry import AgentRegistry
from orchestrator.config import Settings, get_settings
from orchestrator.errors import (
    ManagerInactiveError,
    StepExecutionError,
    TaskNotFoundError,
    TimeoutExceededError,
    UnregisteredAgentError,
)
from orchestrator.monitoring.events import EventEmitter, EventHandler, EventType
from orchestrator.monitoring.stats import DispatcherStats, load_snapshot, save_snapshot
from orchestrator.scheduler.queue import Priority, Task, TaskParameters, TaskQueue, TaskStatus


logger = structlog.get_logger(__name__)


class TaskDispatcher:
    """Runs queued agent actions one head task at a time.

    A polling loop drains the queue every ``check_interval`` seconds. The
    head task blocks the queue while its agent is busy; later tasks are
    never dispatched ahead of it, even when their own agent is idle.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        settings: Optional[Settings] = None,
        events: Optional[EventEmitter] = None,
        check_interval: Optional[float] = None
    ):
        self.registry = registry
        self.settings = settings or get_settings()
        self.events = events or EventEmitter()
        self.check_interval = check_interval or self.settings.task_check_interval

        self.active = False
        self.stats = DispatcherStats()
        self._tasks: Dict[str, Task] = {}
        self._queue = TaskQueue()
        self._waiters: Dict[str, List[asyncio.Future]] = {}
        self._start_time: Optional[datetime] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._passes: Set[asyncio.Task] = set()

    async def start(self) -> None:
        """Start the polling loop."""
        if self.active:
            logger.info("dispatcher_already_active")
            return

        self.load_stats()
        self._start_time = datetime.utcnow()
        self._loop_task = asyncio.create_task(self._poll_loop())
        self.active = True

        logger.info("dispatcher_started", check_interval=self.check_interval)

    async def stop(self) -> None:
        """Stop polling; tasks already running are left to finish."""
        if not self.active:
            logger.info("dispatcher_already_inactive")
            return

        if self._loop_task:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None

        self.save_stats()
        self.active = False

        logger.info("dispatcher_stopped", queued=len(self._queue))

    def add_task(
        self,
        agent_name: str,
        action_type: str,
        parameters: TaskParameters = None,
        priority: Union[Priority, str] = Priority.NORMAL
    ) -> str:
        """Queue an action for ``agent_name`` and return the task ID."""
        if not self.active:
            raise ManagerInactiveError(agent_name)
        if agent_name not in self.registry:
            raise UnregisteredAgentError(agent_name)

        task = Task(
            agent_name=agent_name,
            action_type=action_type,
            parameters=parameters,
            priority=Priority(priority),
        )
        self._tasks[task.task_id] = task
        position = self._queue.push(task.task_id, task.priority)
        self.stats.record_queued()

        logger.info(
            "task_queued",
            task_id=task.task_id,
            agent=agent_name,
            action=action_type,
            priority=task.priority.value,
            position=position
        )
        self.events.emit(
            EventType.TASK_QUEUED,
            task_id=task.task_id,
            agent_name=agent_name,
            priority=task.priority.value
        )

        return task.task_id

    async def process_queue(self) -> int:
        """Drain the queue until it empties or the head agent is busy.

        Returns the number of tasks that reached a terminal state.
        """
        processed = 0

        while self.active and self._queue:
            task = self._tasks[self._queue.peek()]

            # Head is already running under another pass
            if task.status != TaskStatus.PENDING:
                break

            record = self.registry.get_record(task.agent_name)
            if record is not None and not record.is_idle:
                break

            await self._process_task(task)
            processed += 1

        return processed

    async def _process_task(self, task: Task) -> None:
        record = self.registry.get_record(task.agent_name)

        if record is None:
            task.transition(TaskStatus.RUNNING)
            self._queue.remove(task.task_id)
            self._fail(task, UnregisteredAgentError(task.agent_name))
            self._finish(task)
            return

        # Claim the agent before the first await
        self.registry.mark_busy(task.agent_name, task.task_id)
        task.transition(TaskStatus.RUNNING)
        task.model = self.registry.get_recommended_model(task.agent_name)
        self.stats.record_model(task.model["provider"], task.model["model"])

        logger.info(
            "task_started",
            task_id=task.task_id,
            agent=task.agent_name,
            action=task.action_type
        )
        self.events.emit(
            EventType.TASK_STARTED,
            task_id=task.task_id,
            agent_name=task.agent_name
        )

        try:
            handler = resolve_action(record.instance, task.action_type, task.agent_name)
            result = await call_handler(handler, *task.positional_args())
        except Exception as e:
            self._fail(task, e)
        else:
            task.result = result
            task.transition(TaskStatus.COMPLETED)
            self.stats.record_completed(task.agent_name)
            logger.info(
                "task_completed",
                task_id=task.task_id,
                agent=task.agent_name,
                duration=(task.completed_at - task.started_at).total_seconds()
            )
        finally:
            self.registry.mark_idle(task.agent_name)
            self._queue.remove(task.task_id)

        self._finish(task)

    def _fail(self, task: Task, error: Exception) -> None:
        task.error = str(error) or type(error).__name__
        task.transition(TaskStatus.FAILED)
        self.stats.record_failed()
        logger.error(
            "task_failed",
            task_id=task.task_id,
            agent=task.agent_name,
            action=task.action_type,
            error=task.error,
            error_type=type(error).__name__
        )

    def _finish(self, task: Task) -> None:
        self.events.emit(
            EventType.TASK_COMPLETED,
            task_id=task.task_id,
            agent_name=task.agent_name,
            status=task.status.value,
            result=task.result,
            error=task.error
        )

        for waiter in self._waiters.pop(task.task_id, []):
            if not waiter.done():
                waiter.set_result(None)

    async def _poll_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.check_interval)
                if self._queue:
                    queue_pass = asyncio.create_task(self.process_queue())
                    self._passes.add(queue_pass)
                    queue_pass.add_done_callback(self._pass_done)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("dispatcher_loop_error", error=str(e))

    def _pass_done(self, queue_pass: asyncio.Task) -> None:
        self._passes.discard(queue_pass)
        if not queue_pass.cancelled() and queue_pass.exception() is not None:
            logger.error("queue_pass_error", error=str(queue_pass.exception()))

    def get_task_status(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Snapshot of a task, or ``None`` when unknown."""
        task = self._tasks.get(task_id)
        return task.to_dict() if task else None

    async def wait_for_task(self, task_id: str, timeout: Optional[float] = None) -> Any:
        """Wait for a task to finish and return its result.

        Raises :class:`StepExecutionError` when the task failed and
        :class:`TimeoutExceededError` when it is still unfinished after
        ``timeout`` seconds.
        """
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        timeout = timeout if timeout is not None else self.settings.wait_timeout

        if not task.status.is_terminal:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.setdefault(task_id, []).append(waiter)
            try:
                await asyncio.wait_for(waiter, timeout)
            except asyncio.TimeoutError:
                raise TimeoutExceededError(
                    f"Timed out after {timeout}s waiting for task {task_id}"
                ) from None
            finally:
                waiters = self._waiters.get(task_id)
                if waiters and waiter in waiters:
                    waiters.remove(waiter)

        if task.status == TaskStatus.FAILED:
            raise StepExecutionError(task.error or "Task failed", task_id=task_id)
        return task.result

    def list_tasks(self, status: Optional[Union[TaskStatus, str]] = None) -> List[Dict[str, Any]]:
        tasks = sorted(self._tasks.values(), key=lambda t: t.created_at)
        if status is not None:
            status = TaskStatus(status)
            tasks = [t for t in tasks if t.status == status]
        return [t.to_dict() for t in tasks]

    def get_queue(self) -> List[str]:
        """Queued task IDs in dispatch order."""
        return self._queue.snapshot()

    def get_recommended_model(self, agent_name: str) -> Dict[str, str]:
        return self.registry.get_recommended_model(agent_name)

    def on(self, event_type: Union[EventType, str], handler: EventHandler) -> None:
        self.events.on(event_type, handler)

    def uptime(self) -> Optional[float]:
        if not self.active or self._start_time is None:
            return None
        return (datetime.utcnow() - self._start_time).total_seconds()

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats.to_dict(),
            "active": self.active,
            "uptime": self.uptime(),
            "queue_length": len(self._queue),
            "agents": self.registry.list_agents(),
        }

    def load_stats(self) -> bool:
        """Restore counters from ``stats_file``; a missing or unreadable file is ignored."""
        if not self.settings.stats_file:
            return False
        saved = load_snapshot(self.settings.stats_file)
        if not saved or not isinstance(saved.get("stats"), dict):
            return False
        try:
            self.stats = DispatcherStats.from_dict(saved["stats"])
        except (TypeError, ValueError) as e:
            logger.error("stats_snapshot_invalid", path=self.settings.stats_file, error=str(e))
            return False
        logger.info("stats_restored", total_tasks_queued=self.stats.total_tasks_queued)
        return True

    def save_stats(self) -> bool:
        """Write the stats snapshot when ``stats_file`` is configured."""
        if not self.settings.stats_file:
            return False
        return save_snapshot(
            self.settings.stats_file,
            {"saved_at": datetime.utcnow().isoformat(), "stats": self.stats.to_dict()}
        )
