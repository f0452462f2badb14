import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterator, Sequence, TypeVar

from config import settings
from exceptions import BackpressureError

T = TypeVar("T")

RETRY_AFTER_SECONDS = 5


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Consecutive slices of at most `size` items, in order."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class ProcessingGate:
    """Bounds pipeline work across HTTP requests.

    At most `slots` requests run the pipeline at once. Requests beyond
    that wait, but only up to `max_queue` admitted requests in total
    (running plus waiting); past that, new requests are refused with
    BackpressureError so uploads don't pile up in memory.
    """

    def __init__(self, slots: int, max_queue: int):
        self._semaphore = asyncio.Semaphore(slots)
        self._max_queue = max_queue
        self._admitted = 0
        self._running = 0

    async def acquire(self):
        """Wait for a slot. Raises BackpressureError (503) when the queue is full."""
        # No await between the check and the increment, so no lock is needed
        if self._admitted >= self._max_queue:
            raise BackpressureError(
                "Processing queue full. Try again shortly.",
                retry_after=RETRY_AFTER_SECONDS,
            )
        self._admitted += 1
        try:
            await self._semaphore.acquire()
        except BaseException:
            self._admitted -= 1
            raise
        self._running += 1

    def release(self):
        self._running -= 1
        self._admitted -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    @property
    def active_jobs(self) -> int:
        return self._running

    @property
    def queued_jobs(self) -> int:
        return self._admitted - self._running


# Module-level singleton
processing_gate = ProcessingGate(
    settings.processing_semaphore_size,
    settings.max_queue_depth,
)
