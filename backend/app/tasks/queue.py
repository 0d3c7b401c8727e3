"""
Background task queue for fire-and-forget work such as relay uploads.

Provides a priority-based task queue with a worker pool, retry logic and
graceful shutdown. Producers hand tasks over with ``submit`` which never
waits on the workers.
"""

import asyncio
import itertools
import uuid
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import structlog

logger = structlog.get_logger(__name__)

TaskHandler = Callable[[Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]


class TaskPriority(Enum):
    """Task priority levels."""

    LOW = 1
    NORMAL = 2
    HIGH = 3


class TaskStatus(Enum):
    """Task execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


@dataclass
class BackgroundTask:
    """Background task data structure."""

    task_type: str
    priority: TaskPriority
    data: Dict[str, Any]
    task_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    max_retries: int = 3
    retry_count: int = 0
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


class TaskQueue:
    """Priority-based background task queue with retry logic."""

    def __init__(
        self,
        max_concurrent_tasks: int = 2,
        retry_base_delay: float = 2.0,
        max_retry_delay: float = 60.0,
        max_completed_tasks: int = 1000,
    ):
        """
        Initialize task queue.

        Args:
            max_concurrent_tasks: Number of workers
            retry_base_delay: Base of the exponential retry backoff in seconds
            max_retry_delay: Upper bound of a single retry delay in seconds
            max_completed_tasks: Finished tasks kept for status lookups
        """
        self.max_concurrent_tasks = max_concurrent_tasks
        self.retry_base_delay = retry_base_delay
        self.max_retry_delay = max_retry_delay
        self.max_completed_tasks = max_completed_tasks
        self.queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self.active_tasks: Dict[str, BackgroundTask] = {}
        self.completed_tasks: "OrderedDict[str, BackgroundTask]" = OrderedDict()
        self.task_handlers: Dict[str, TaskHandler] = {}
        self.running = False
        self.stats: Dict[str, int] = defaultdict(int)
        self._sequence = itertools.count()
        self._worker_tasks: List[asyncio.Task] = []
        self._retry_timers: Set[asyncio.Task] = set()

    def register_handler(self, task_type: str, handler: TaskHandler) -> None:
        """Register a handler coroutine for a task type."""
        if task_type in self.task_handlers:
            logger.warning("task_handler_replaced", task_type=task_type)

        self.task_handlers[task_type] = handler
        logger.info("task_handler_registered", task_type=task_type)

    def start(self) -> None:
        """Spawn the worker pool on the running event loop."""
        if self.running:
            logger.warning("task_queue_already_running")
            return

        self.running = True
        self._worker_tasks = [
            asyncio.create_task(self._worker(f"worker-{i}"))
            for i in range(self.max_concurrent_tasks)
        ]
        logger.info("task_queue_started", workers=self.max_concurrent_tasks)

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop accepting tasks, let active ones finish, then cancel workers."""
        if not self.running:
            return

        self.running = False
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self.active_tasks and loop.time() < deadline:
            await asyncio.sleep(0.1)

        if self.active_tasks:
            logger.warning(
                "task_queue_shutdown_timeout", remaining_tasks=len(self.active_tasks)
            )

        for timer in self._retry_timers:
            timer.cancel()
        if self._retry_timers:
            logger.warning("task_retries_dropped", count=len(self._retry_timers))

        for worker_task in self._worker_tasks:
            worker_task.cancel()
        await asyncio.gather(
            *self._worker_tasks, *self._retry_timers, return_exceptions=True
        )
        self._worker_tasks = []
        self._retry_timers.clear()

        logger.info("task_queue_stopped", pending=self.queue.qsize())

    def submit(self, task: BackgroundTask) -> None:
        """Hand a task to the workers without waiting.

        Raises:
            RuntimeError: The queue is not running
        """
        if not self.running:
            raise RuntimeError("Task queue is not running")

        # Lower number = served first; the sequence keeps FIFO within a priority
        self.queue.put_nowait((-task.priority.value, next(self._sequence), task))

        logger.debug("task_submitted", task_id=task.task_id, task_type=task.task_type)
        self.stats["tasks_added"] += 1

    def get_task_status(self, task_id: str) -> Optional[BackgroundTask]:
        """Get the status of a specific task."""
        return self.active_tasks.get(task_id) or self.completed_tasks.get(task_id)

    async def _worker(self, worker_name: str) -> None:
        """Worker loop pulling tasks until cancelled."""
        while True:
            _, _, task = await self.queue.get()
            try:
                await self._process_task(task, worker_name)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("task_worker_error", worker=worker_name, error=str(e))
            finally:
                self.queue.task_done()

    async def _process_task(self, task: BackgroundTask, worker_name: str) -> None:
        """Process a specific task."""
        task.status = TaskStatus.RUNNING
        task.started_at = datetime.now()
        self.active_tasks[task.task_id] = task

        try:
            handler = self.task_handlers.get(task.task_type)
            if not handler:
                raise ValueError(f"No handler registered for task type: {task.task_type}")

            task.result = await handler(task.data)
            task.status = TaskStatus.COMPLETED
            task.completed_at = datetime.now()

            self.stats["tasks_completed"] += 1
            logger.info(
                "task_completed",
                task_id=task.task_id,
                task_type=task.task_type,
                worker=worker_name,
            )

        except Exception as e:
            task.status = TaskStatus.FAILED
            task.completed_at = datetime.now()
            task.error_message = str(e)

            self.stats["tasks_failed"] += 1
            logger.error(
                "task_failed",
                task_id=task.task_id,
                task_type=task.task_type,
                worker=worker_name,
                retry_count=task.retry_count,
                error=str(e),
            )

            if task.retry_count < task.max_retries and self.running:
                self._schedule_retry(task)

        finally:
            self.active_tasks.pop(task.task_id, None)
            if task.status != TaskStatus.RETRYING:
                self._remember_completed(task)

    def _remember_completed(self, task: BackgroundTask) -> None:
        """Keep a finished task for status lookups, dropping the oldest ones."""
        self.completed_tasks[task.task_id] = task
        while len(self.completed_tasks) > self.max_completed_tasks:
            self.completed_tasks.popitem(last=False)

    def _schedule_retry(self, task: BackgroundTask) -> None:
        """Put a failed task back after an exponential backoff.

        The backoff runs in a separate timer task, not in the worker.
        """
        task.retry_count += 1
        task.status = TaskStatus.RETRYING
        task.error_message = None
        task.started_at = None
        task.completed_at = None

        delay = min(self.retry_base_delay**task.retry_count, self.max_retry_delay)
        logger.info(
            "task_retry_scheduled",
            task_id=task.task_id,
            task_type=task.task_type,
            retry_count=task.retry_count,
            delay_seconds=delay,
        )

        timer = asyncio.create_task(self._resubmit_after(task, delay))
        self._retry_timers.add(timer)
        timer.add_done_callback(self._retry_timers.discard)

    async def _resubmit_after(self, task: BackgroundTask, delay: float) -> None:
        await asyncio.sleep(delay)
        if self.running:
            self.submit(task)

    def get_stats(self) -> Dict[str, Any]:
        """Get task queue statistics."""
        return {
            "running": self.running,
            "active_tasks": len(self.active_tasks),
            "queue_size": self.queue.qsize(),
            "stats": dict(self.stats),
            "completed_tasks": len(self.completed_tasks),
            "registered_handlers": list(self.task_handlers.keys()),
        }
