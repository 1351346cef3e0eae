"""
Admission gate bounding the number of in-flight asynchronous tasks.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class AdmissionGate:
    """A counting semaphore with in-flight tracking, task submission and barrier drains."""

    def __init__(self, permits: int):
        """Initialize the gate with the given number of permits.

        Args:
            permits: Maximum number of tasks allowed in flight at once
        """
        if permits < 1:
            raise ValueError(f"AdmissionGate needs at least one permit, got {permits}")

        self._max_permits = permits
        self._semaphore = asyncio.Semaphore(permits)
        self._in_flight = 0
        self._peak_in_flight = 0
        self._tasks: Set[asyncio.Task] = set()

        logger.debug(f"Initialized AdmissionGate with {permits} permits")

    async def acquire(self, timeout: Optional[float] = None) -> bool:
        """Acquire a permit from the gate.

        Waits until a permit is available. Cancelling the waiting task
        leaves the permit count unchanged.

        Args:
            timeout: Maximum time to wait for a permit (None = wait forever)

        Returns:
            True if a permit was acquired, False on timeout
        """
        if timeout is None:
            await self._semaphore.acquire()
        elif not await self._acquire_within(timeout):
            return False

        self._in_flight += 1
        if self._in_flight > self._peak_in_flight:
            self._peak_in_flight = self._in_flight
        return True

    async def _acquire_within(self, timeout: float) -> bool:
        # A waiter abandoned on timeout or cancellation may still be granted
        # the permit afterwards; its done callback hands that permit back.
        waiter = asyncio.ensure_future(self._semaphore.acquire())
        try:
            done, _ = await asyncio.wait({waiter}, timeout=timeout)
        except asyncio.CancelledError:
            self._abandon(waiter)
            raise

        if done:
            return True
        self._abandon(waiter)
        return False

    def _abandon(self, waiter: asyncio.Future) -> None:
        if waiter.done():
            self._return_unused_permit(waiter)
        else:
            waiter.cancel()
            waiter.add_done_callback(self._return_unused_permit)

    def _return_unused_permit(self, waiter: asyncio.Future) -> None:
        if not waiter.cancelled() and waiter.exception() is None:
            self._semaphore.release()

    def release(self) -> None:
        """Release a permit back to the gate."""
        if self._in_flight <= 0:
            logger.warning("Attempted to release gate when in_flight is 0")
            return

        self._in_flight -= 1
        self._semaphore.release()

    async def drain(self) -> None:
        """Wait until every task holding a permit has released it.

        Acquires all permits and then releases them again. Callers must
        stop submitting for the current phase before draining, otherwise
        new submissions race with the barrier.
        """
        acquired = 0
        try:
            for _ in range(self._max_permits):
                await self._semaphore.acquire()
                acquired += 1
        finally:
            for _ in range(acquired):
                self._semaphore.release()

    async def submit(self, fn: Callable[..., Awaitable[Any]], *args) -> asyncio.Task:
        """Acquire a permit and schedule ``fn(*args)`` as a task.

        The permit is released from the task's done callback, so it comes
        back even when the task is cancelled before it starts running.

        Returns:
            The scheduled task
        """
        await self.acquire()
        return self.schedule(fn, *args)

    def schedule(self, fn: Callable[..., Awaitable[Any]], *args) -> asyncio.Task:
        """Schedule ``fn(*args)`` on a permit the caller already acquired.

        Ownership of the permit passes to the task, which releases it when
        it finishes. Callers that decide not to schedule after acquiring
        must call ``release`` themselves.
        """
        try:
            task = asyncio.create_task(fn(*args))
        except BaseException:
            self.release()
            raise

        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self.release()
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Unhandled error in submitted task: {error!r}")

    def cancel_outstanding(self) -> int:
        """Cancel every submitted task that has not finished yet.

        The calling task is never cancelled.

        Returns:
            Number of tasks that were cancelled
        """
        current = asyncio.current_task()
        cancelled = 0
        for task in list(self._tasks):
            if task is not current and not task.done():
                task.cancel()
                cancelled += 1

        if cancelled:
            logger.info(f"Cancelled {cancelled} outstanding tasks")
        return cancelled

    def in_flight(self) -> int:
        """Get the current number of tasks holding a permit."""
        return self._in_flight

    def peak_in_flight(self) -> int:
        """Get the highest in-flight count observed since construction."""
        return self._peak_in_flight

    def available_permits(self) -> int:
        """Get the number of permits currently available."""
        return self._max_permits - self._in_flight

    def max_permits(self) -> int:
        """Get the capacity of the gate."""
        return self._max_permits

    def pending_tasks(self) -> int:
        """Get the number of submitted tasks that have not finished."""
        return len(self._tasks)

    def __repr__(self) -> str:
        return (
            f"AdmissionGate(permits={self.available_permits()}/{self._max_permits}, "
            f"in_flight={self._in_flight})"
        )
