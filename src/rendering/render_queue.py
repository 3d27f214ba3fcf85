"""Single-flight execution of work that draws on the shared page surface.

Page previews and OCR rasterization both render through the same native
surface. Interleaving them corrupts the output, so every such operation
is submitted to a :class:`RenderQueue`, which runs tasks one at a time in
submission order and pauses briefly between tasks so native resources
are released before the next render begins.

The queue is an owned object: create one per surface and pass it to
every component that renders.
"""

import asyncio
import inspect
from collections import deque
from collections.abc import Awaitable, Callable, Generator
from enum import StrEnum
from typing import Any, Generic, TypeVar

from src.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_SETTLE_INTERVAL = 0.1


class RenderQueueError(Exception):
    """Base class for render queue errors."""


class RenderCancelledError(RenderQueueError):
    """A render task was cancelled before it produced a result."""


class RenderQueueClosedError(RenderQueueError):
    """A task was submitted to a closed queue."""


class QueueState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"


class TaskStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RenderTask(Generic[T]):
    """A unit of render work and its pending outcome.

    Awaiting the task yields the result of ``execute`` or raises its
    exception; a cancelled task raises :class:`RenderCancelledError`.
    """

    def __init__(
        self,
        execute: Callable[[], Awaitable[T] | T],
        context: str,
        future: "asyncio.Future[T]",
        key: str | None = None,
    ) -> None:
        self.execute = execute
        self.context = context
        self.key = key
        self.status = TaskStatus.PENDING
        self._future = future
        self._runner: asyncio.Future[T] | None = None

    def __repr__(self) -> str:
        return f"RenderTask(context={self.context!r}, status={self.status.value})"

    def __await__(self) -> Generator[Any, None, T]:
        return self._future.__await__()

    @property
    def future(self) -> "asyncio.Future[T]":
        return self._future

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> T:
        return self._future.result()

    def cancel(self, reason: str | None = None) -> bool:
        """Cancel the task if it has not settled yet.

        A queued task is skipped when its turn comes. A running task is
        interrupted at its next suspension point; the queue still waits
        for it to wind down before starting the next task.

        Returns:
            ``True`` if this call cancelled the task.
        """
        if self._future.done():
            return False
        message = reason or f"Render task cancelled: {self.context}"
        self._future.set_exception(RenderCancelledError(message))
        # Superseded results are usually dropped unread.
        self._future.exception()
        self.status = TaskStatus.CANCELLED
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
        logger.info("Cancelled render task: %s", self.context)
        return True

    def _set_result(self, result: T) -> None:
        if self._future.done():
            return
        self._future.set_result(result)
        self.status = TaskStatus.SUCCEEDED

    def _set_exception(self, exc: BaseException) -> None:
        if self._future.done():
            return
        self._future.set_exception(exc)
        self.status = TaskStatus.FAILED


class RenderQueue:
    """FIFO executor running at most one render task at a time.

    Args:
        settle_interval: Seconds to wait after a task settles before
            starting the next one.
    """

    def __init__(self, settle_interval: float = DEFAULT_SETTLE_INTERVAL) -> None:
        self.settle_interval = settle_interval
        self._pending: deque[RenderTask[Any]] = deque()
        self._active: RenderTask[Any] | None = None
        self._drainer: asyncio.Task[None] | None = None
        self._latest: dict[str, RenderTask[Any]] = {}
        self._closed = False

    @property
    def state(self) -> QueueState:
        return QueueState.RUNNING if self._active is not None else QueueState.IDLE

    @property
    def is_rendering(self) -> bool:
        return self._active is not None

    @property
    def pending_count(self) -> int:
        """Number of queued tasks still waiting to run."""
        return sum(1 for task in self._pending if not task.done())

    @property
    def current_context(self) -> str | None:
        return self._active.context if self._active is not None else None

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(
        self,
        execute: Callable[[], Awaitable[T] | T],
        context: str = "unknown",
        supersede: str | None = None,
    ) -> RenderTask[T]:
        """Queue a unit of render work.

        Must be called from within a running event loop.

        Args:
            execute: Zero-argument callable returning the result or an
                awaitable of it. Blocking work inside it should be
                offloaded so the event loop keeps running.
            context: Description used in logs.
            supersede: Optional key; a still-outstanding task submitted
                earlier with the same key is cancelled.

        Returns:
            Awaitable handle for the task's outcome.

        Raises:
            RenderQueueClosedError: If the queue has been closed.
        """
        if self._closed:
            raise RenderQueueClosedError(f"Cannot submit {context!r}: queue closed")

        loop = asyncio.get_running_loop()
        task: RenderTask[T] = RenderTask(
            execute, context, loop.create_future(), key=supersede
        )
        if supersede is not None:
            previous = self._latest.get(supersede)
            if previous is not None:
                previous.cancel(f"Superseded by {context}")
            self._latest[supersede] = task

        self._pending.append(task)
        logger.debug("Queued render task %s (%d pending)", context, self.pending_count)

        if self._drainer is None or self._drainer.done():
            self._drainer = loop.create_task(self._drain())
        return task

    async def join(self) -> None:
        """Wait until every queued task has settled."""
        drainer = self._drainer
        if drainer is not None and not drainer.done():
            await asyncio.shield(drainer)

    async def close(self) -> None:
        """Cancel outstanding work and wait for the queue to go idle."""
        self._closed = True
        for task in list(self._pending):
            task.cancel("Render queue closed")
        if self._active is not None:
            self._active.cancel("Render queue closed")
        await self.join()
        self._pending.clear()
        logger.info("Render queue closed")

    async def _drain(self) -> None:
        while self._pending:
            task = self._pending.popleft()
            if task.done():
                logger.debug("Skipping cancelled render task: %s", task.context)
                self._forget(task)
                continue
            await self._run(task)
            await asyncio.sleep(self.settle_interval)

    async def _run(self, task: RenderTask[Any]) -> None:
        self._active = task
        task.status = TaskStatus.RUNNING
        logger.info("Starting render task: %s", task.context)

        runner = asyncio.ensure_future(self._invoke(task.execute))
        task._runner = runner
        try:
            await asyncio.wait([runner])
        finally:
            self._active = None
            self._forget(task)

        if runner.cancelled():
            task._set_exception(
                RenderCancelledError(f"Render task aborted: {task.context}")
            )
            logger.info("Aborted render task: %s", task.context)
            return

        exc = runner.exception()
        if exc is not None:
            logger.error("Render task failed: %s: %s", task.context, exc)
            task._set_exception(exc)
        else:
            task._set_result(runner.result())
        logger.info("Completed render task: %s", task.context)

    def _forget(self, task: RenderTask[Any]) -> None:
        if task.key is not None and self._latest.get(task.key) is task:
            del self._latest[task.key]

    @staticmethod
    async def _invoke(execute: Callable[[], Any]) -> Any:
        result = execute()
        if inspect.isawaitable(result):
            result = await result
        return result
