"""
Background Task Worker.

Runs work that must not delay a chat response, such as distilling the
latest exchange into semantic memory, on a bounded queue.

Key Features:
- Bounded queue; submissions beyond capacity are dropped and counted
- Coalescing: a task submitted with a key that is still queued is folded
  into the queued task (a later distillation pass reads the newer history
  anyway)
- Retry with exponential backoff for recoverable failures only
- Graceful shutdown that drains the queue within a timeout
- Starts on the first submission unless it has been stopped

A failed background task is logged and recorded on the task; it is never
reported to the chat caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID, uuid4

from .exceptions import ChatError

logger = logging.getLogger(__name__)

TaskFunc = Callable[..., Awaitable[Any]]


class TaskStatus(str, Enum):
    """Lifecycle of a background task."""

    QUEUED = "queued"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BackgroundTask:
    """One unit of background work and its outcome."""

    func: TaskFunc
    args: tuple = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    name: str = ""
    key: Optional[str] = None
    max_attempts: int = 3
    id: UUID = field(default_factory=uuid4)
    status: TaskStatus = TaskStatus.QUEUED
    attempts: int = 0
    queued_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None
    error: Optional[str] = None
    result: Any = None

    async def run(self) -> Any:
        self.attempts += 1
        self.status = TaskStatus.RUNNING
        return await self.func(*self.args, **self.kwargs)


@dataclass
class WorkerMetrics:
    """Counters for monitoring the background worker."""

    tasks_submitted: int = 0
    tasks_coalesced: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    tasks_dropped: int = 0
    total_retries: int = 0
    current_queue_size: int = 0
    peak_queue_size: int = 0


def is_retryable(error: Exception) -> bool:
    """Chat errors declare whether a retry can help; anything else is retried."""
    if isinstance(error, ChatError):
        return error.recoverable
    return True


class BackgroundWorker:
    """Bounded-queue worker for fire-and-forget tasks.

    Usage:
        worker = BackgroundWorker(max_queue_size=100)
        await worker.start()

        task_id = await worker.submit(
            extractor.extract_semantic_memory,
            context,
            name=f"memory-extraction:{context.chat_id}",
            key=f"memory-extraction:{context.chat_id}",
        )

        # On shutdown
        await worker.stop(timeout=30)
    """

    # Finished tasks kept for get_task()
    HISTORY_SIZE = 1000

    def __init__(
        self,
        max_queue_size: int = 100,
        max_concurrent: int = 5,
        retry_base_delay: float = 1.0,
        max_retry_delay: float = 60.0,
    ):
        """Initialize the background worker.

        Args:
            max_queue_size: Maximum tasks waiting in the queue
            max_concurrent: Number of worker loops
            retry_base_delay: Delay before the first retry (seconds)
            max_retry_delay: Upper bound on any retry delay (seconds)
        """
        self.max_queue_size = max_queue_size
        self.max_concurrent = max_concurrent
        self.retry_base_delay = retry_base_delay
        self.max_retry_delay = max_retry_delay

        self._queue: asyncio.Queue[BackgroundTask] = asyncio.Queue(maxsize=max_queue_size)
        self._loops: list[asyncio.Task] = []
        self._queued_by_key: dict[str, BackgroundTask] = {}
        self._history: OrderedDict[UUID, BackgroundTask] = OrderedDict()
        self._metrics = WorkerMetrics()
        self._running = False
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def metrics(self) -> WorkerMetrics:
        self._metrics.current_queue_size = self._queue.qsize()
        return self._metrics

    def get_task(self, task_id: UUID) -> Optional[BackgroundTask]:
        return self._history.get(task_id)

    # ------------------------------------------
    # Lifecycle
    # ------------------------------------------

    async def start(self) -> None:
        if self._running:
            return

        self._running = True
        self._stopped = False
        self._loops = [
            asyncio.create_task(self._loop(n), name=f"background-worker-{n}")
            for n in range(self.max_concurrent)
        ]
        logger.info(f"Background worker started with {self.max_concurrent} loops")

    async def join(self) -> None:
        """Wait until every queued task, retries included, has finished."""
        await self._queue.join()

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop accepting work and let queued tasks finish within ``timeout``."""
        if not self._running:
            return

        self._running = False
        self._stopped = True
        pending = self._queue.qsize()
        if pending:
            logger.info(f"Draining {pending} background tasks before shutdown")
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Shutdown timeout: abandoning {self._queue.qsize()} background tasks"
            )

        for loop in self._loops:
            loop.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()
        logger.info("Background worker stopped")

    # ------------------------------------------
    # Submission
    # ------------------------------------------

    async def submit(
        self,
        func: TaskFunc,
        *args: Any,
        name: str = "",
        key: Optional[str] = None,
        max_attempts: int = 3,
        **kwargs: Any,
    ) -> Optional[UUID]:
        """Queue ``func(*args, **kwargs)`` for background execution.

        Args:
            func: Coroutine function to run
            name: Label used in logs (defaults to the function name)
            key: Coalescing key; while a task with the same key is still
                queued, the submission returns that task's id instead
            max_attempts: Attempts before a recoverable failure is final

        Returns:
            Task id, or None if the worker is stopped or the queue is full
        """
        if not self._running and not self._stopped:
            await self.start()

        if not self._running:
            logger.warning(
                f"Background worker stopped; skipped {name or getattr(func, '__name__', 'task')}"
            )
            return None

        if key is not None and key in self._queued_by_key:
            queued = self._queued_by_key[key]
            self._metrics.tasks_coalesced += 1
            logger.debug(f"Coalesced {name or queued.name} into queued task {queued.id}")
            return queued.id

        task = BackgroundTask(
            func=func,
            args=args,
            kwargs=kwargs,
            name=name or getattr(func, "__name__", "task"),
            key=key,
            max_attempts=max_attempts,
        )
        try:
            self._queue.put_nowait(task)
        except asyncio.QueueFull:
            self._metrics.tasks_dropped += 1
            logger.warning(f"Background queue full ({self.max_queue_size}); dropped {task.name}")
            return None

        if key is not None:
            self._queued_by_key[key] = task
        self._record(task)
        self._metrics.tasks_submitted += 1
        self._metrics.peak_queue_size = max(self._metrics.peak_queue_size, self._queue.qsize())
        logger.debug(f"Queued {task.name} ({task.id})")
        return task.id

    def _record(self, task: BackgroundTask) -> None:
        self._history[task.id] = task
        while len(self._history) > self.HISTORY_SIZE:
            self._history.popitem(last=False)

    # ------------------------------------------
    # Execution
    # ------------------------------------------

    async def _loop(self, loop_id: int) -> None:
        while True:
            task = await self._queue.get()
            if task.key is not None and self._queued_by_key.get(task.key) is task:
                del self._queued_by_key[task.key]
            try:
                await self._execute(task)
            except asyncio.CancelledError:
                task.status = TaskStatus.FAILED
                task.error = "cancelled"
                raise
            except Exception as e:
                logger.exception(f"Background loop {loop_id} crashed on {task.name}: {e}")
            finally:
                self._queue.task_done()

    def _retry_delay(self, attempts: int) -> float:
        return min(self.retry_base_delay * 2 ** (attempts - 1), self.max_retry_delay)

    async def _execute(self, task: BackgroundTask) -> None:
        """Run a task, retrying recoverable failures in place."""
        while True:
            try:
                task.result = await task.run()
                break
            except Exception as e:
                task.error = str(e)
                if task.attempts >= task.max_attempts or not is_retryable(e):
                    task.status = TaskStatus.FAILED
                    task.finished_at = time.monotonic()
                    self._metrics.tasks_failed += 1
                    logger.error(f"{task.name} failed after {task.attempts} attempt(s): {e}")
                    return

                delay = self._retry_delay(task.attempts)
                task.status = TaskStatus.RETRYING
                self._metrics.total_retries += 1
                logger.warning(
                    f"{task.name} failed (attempt {task.attempts}), retrying in {delay:.1f}s: {e}"
                )
                await asyncio.sleep(delay)

        task.status = TaskStatus.COMPLETED
        task.finished_at = time.monotonic()
        self._metrics.tasks_completed += 1
        logger.debug(f"{task.name} completed after {task.attempts} attempt(s)")


# Process-wide worker, created on first use
_background_worker: Optional[BackgroundWorker] = None


def get_background_worker() -> BackgroundWorker:
    global _background_worker
    if _background_worker is None:
        _background_worker = BackgroundWorker()
    return _background_worker


async def init_background_worker(
    max_queue_size: int = 100,
    max_concurrent: int = 5,
) -> BackgroundWorker:
    """Create and start the process-wide worker."""
    global _background_worker
    _background_worker = BackgroundWorker(
        max_queue_size=max_queue_size,
        max_concurrent=max_concurrent,
    )
    await _background_worker.start()
    return _background_worker


async def shutdown_background_worker(timeout: float = 30.0) -> None:
    global _background_worker
    if _background_worker is not None:
        await _background_worker.stop(timeout=timeout)
        _background_worker = None
