"""Fire-and-forget scheduling of client calls on a bounded asyncio pool.

Submission returns a TaskHandle immediately. Operations run concurrently up
to the pool size; callers drain the pool to wait for everything queued.
Failures are wrapped in AsyncOperationFailure and routed to failure
callbacks, never left unhandled on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from hfserverless.errors import (
    AsyncOperationFailure,
    ConfigurationError,
    find_status_code,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


class TaskHandle(Generic[T]):
    """Completion handle for one submitted operation.

    Callbacks registered after the operation settled fire immediately.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._done = asyncio.Event()
        self._result: T | None = None
        self._failure: AsyncOperationFailure | None = None
        self._on_success: list[Callable[[T], Any]] = []
        self._on_failure: list[Callable[[AsyncOperationFailure], Any]] = []

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def failure(self) -> AsyncOperationFailure | None:
        return self._failure

    def on_success(self, callback: Callable[[T], Any]) -> TaskHandle[T]:
        """Register *callback* for the operation's result."""
        if self.done:
            if self._failure is None:
                self._invoke(callback, self._result)
        else:
            self._on_success.append(callback)
        return self

    def on_failure(
        self, callback: Callable[[AsyncOperationFailure], Any]
    ) -> TaskHandle[T]:
        """Register *callback* for the wrapped failure."""
        if self.done:
            if self._failure is not None:
                self._invoke(callback, self._failure)
        else:
            self._on_failure.append(callback)
        return self

    async def wait(self) -> T:
        """Wait for the operation; return its result or raise its failure."""
        await self._done.wait()
        if self._failure is not None:
            raise self._failure
        return self._result  # type: ignore[return-value]

    def _settle(self, result: T | None, failure: AsyncOperationFailure | None) -> None:
        self._result = result
        self._failure = failure
        self._done.set()
        if failure is None:
            for callback in self._on_success:
                self._invoke(callback, result)
        else:
            for failure_callback in self._on_failure:
                self._invoke(failure_callback, failure)
        self._on_success.clear()
        self._on_failure.clear()

    def _invoke(self, callback: Callable[[Any], Any], value: Any) -> None:
        try:
            callback(value)
        except Exception as exc:
            # A misbehaving callback must not take the pool down with it.
            logger.warning("Callback for %s failed: %s", self.name, exc)


class TaskPool:
    """Fixed-size pool of concurrently running operations.

    The pool is owned explicitly (by a client or the caller); nothing here is
    process-global. Must be used from within a running event loop; a pool
    reused under a new loop starts a fresh concurrency limit there.
    """

    def __init__(self, size: int = 4) -> None:
        if size < 1:
            raise ConfigurationError(
                f"pool size must be ≥ 1, got {size}",
                hint="This controls how many submitted calls run in parallel.",
            )
        self.size = size
        self._semaphore: asyncio.Semaphore | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._submitted = 0

    @property
    def pending(self) -> int:
        """Number of operations submitted but not yet settled."""
        return len(self._tasks)

    def submit(
        self, operation: Callable[[], Awaitable[T]], *, name: str | None = None
    ) -> TaskHandle[T]:
        """Schedule *operation* and return its handle without blocking."""
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._loop is not loop:
            # A semaphore binds to the loop it first blocks on.
            self._semaphore = asyncio.Semaphore(self.size)
            self._loop = loop
        self._submitted += 1
        handle: TaskHandle[T] = TaskHandle(name or f"operation-{self._submitted}")
        task = loop.create_task(
            self._run(operation, handle, self._semaphore), name=handle.name
        )
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finish(t, handle))
        return handle

    async def drain(self) -> None:
        """Wait until every submitted operation, including late ones, settled."""
        while self._tasks:
            # asyncio.wait leaves the tasks running if the drain is cancelled.
            await asyncio.wait(list(self._tasks))

    def _finish(self, task: asyncio.Task[None], handle: TaskHandle[Any]) -> None:
        self._tasks.discard(task)
        # Covers tasks cancelled before their first step.
        if not handle.done:
            handle._settle(None, AsyncOperationFailure("operation cancelled"))

    async def _run(
        self,
        operation: Callable[[], Awaitable[T]],
        handle: TaskHandle[T],
        semaphore: asyncio.Semaphore,
    ) -> None:
        try:
            async with semaphore:
                logger.debug("Running pooled %s", handle.name)
                result = await operation()
        except asyncio.CancelledError:
            # Queued or running; unblock waiters, then let the cancellation propagate.
            handle._settle(None, AsyncOperationFailure("operation cancelled"))
            raise
        except Exception as exc:
            failure = AsyncOperationFailure(
                f"Failed to make API request: {exc}",
                hint=getattr(exc, "hint", None),
                status_code=find_status_code(exc),
            )
            failure.__cause__ = exc
            handle._settle(None, failure)
            return
        handle._settle(result, None)
