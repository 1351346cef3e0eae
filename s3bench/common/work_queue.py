"""
Closable FIFO hand-off between the listing producer and scan consumers.
"""

import asyncio
import logging
from typing import AsyncIterator, Generic, TypeVar

from s3bench.common.errors import QueueClosedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_END_OF_STREAM = object()


class EndOfStream(Exception):
    """Raised by ``WorkQueue.get`` once the queue is closed and drained."""


class WorkQueue(Generic[T]):
    """Unbounded FIFO channel with explicit close.

    ``get`` only reports end-of-stream after ``close`` has been called
    and every item put before the close has been taken, so consumers
    can never observe "closed" while items are still buffered.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._put_count = 0
        self._get_count = 0

    def put(self, item: T) -> None:
        """Append an item. Never blocks."""
        if self._closed:
            raise QueueClosedError("Cannot put into a closed WorkQueue")
        self._queue.put_nowait(item)
        self._put_count += 1

    def put_all(self, items) -> int:
        """Append every item of an iterable, returning how many were added."""
        added = 0
        for item in items:
            self.put(item)
            added += 1
        return added

    def close(self) -> None:
        """Signal that no more items will be produced. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END_OF_STREAM)
        logger.debug(f"WorkQueue closed after {self._put_count} items")

    async def get(self) -> T:
        """Remove and return the next item, waiting until one is available.

        Raises:
            EndOfStream: the queue is closed and fully drained
        """
        item = await self._queue.get()
        if item is _END_OF_STREAM:
            # Leave the marker in place for any other consumer
            self._queue.put_nowait(_END_OF_STREAM)
            raise EndOfStream()
        self._get_count += 1
        return item

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            try:
                yield await self.get()
            except EndOfStream:
                return

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def produced(self) -> int:
        return self._put_count

    @property
    def consumed(self) -> int:
        return self._get_count

    def __len__(self) -> int:
        return self._put_count - self._get_count

    def __repr__(self) -> str:
        return f"WorkQueue(pending={len(self)}, closed={self._closed})"
