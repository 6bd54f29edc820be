from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from typing import Callable, Iterable, Protocol

import structlog

from utils.metrics import FLUSH_DURATION, FLUSHES, QUEUE_DEPTH, READINGS_DROPPED

from .models import DecodedReading

logger = structlog.get_logger(__name__)


class ReadingSink(Protocol):
    async def send_batch(self, readings: list[DecodedReading]) -> None: ...


class BatchCollector:
    """FIFO buffer of decoded readings with count and time flush triggers.

    Frame callbacks enqueue, the lifecycle timer calls :meth:`tick`. A batch
    that fails delivery goes back to the front of the queue in its original
    order, so delivery is at-least-once.
    """

    def __init__(
        self,
        sink: ReadingSink,
        max_batch_size: int = 200,
        flush_interval_ms: float = 3000.0,
        max_queue_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")

        self.sink = sink
        self.max_batch_size = max_batch_size
        self.flush_interval = flush_interval_ms / 1000.0
        self.max_queue_size = max_queue_size
        self._clock = clock

        self._queue: deque[DecodedReading] = deque()
        self._queue_lock = threading.Lock()
        self._flush_lock = asyncio.Lock()
        self._last_flush = clock()

    def __len__(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    def snapshot(self) -> list[DecodedReading]:
        with self._queue_lock:
            return list(self._queue)

    def enqueue(self, readings: Iterable[DecodedReading]) -> None:
        dropped = 0
        with self._queue_lock:
            self._queue.extend(readings)
            if self.max_queue_size is not None:
                while len(self._queue) > self.max_queue_size:
                    self._queue.popleft()
                    dropped += 1
            depth = len(self._queue)

        QUEUE_DEPTH.set(depth)
        if dropped:
            READINGS_DROPPED.labels(reason="queue_overflow").inc(dropped)
            logger.warning("queue_overflow", dropped=dropped, max_queue_size=self.max_queue_size)

    def should_flush(self) -> bool:
        with self._queue_lock:
            size = len(self._queue)
        if size == 0:
            return False
        if size >= self.max_batch_size:
            return True
        return self._clock() - self._last_flush >= self.flush_interval

    async def tick(self) -> bool:
        """Flush if a trigger fired. Returns True when a batch was delivered."""
        if not self.should_flush():
            return False
        return await self.flush() > 0

    async def flush(self) -> int:
        """Deliver up to ``max_batch_size`` readings.

        Returns the number of readings delivered; 0 when the queue was empty
        or delivery failed and the batch was requeued.
        """
        async with self._flush_lock:
            with self._queue_lock:
                count = min(len(self._queue), self.max_batch_size)
                batch = [self._queue.popleft() for _ in range(count)]

            if not batch:
                return 0

            logger.info("flushing", readings=len(batch))
            started = time.perf_counter()
            try:
                await self.sink.send_batch(batch)
            except asyncio.CancelledError:
                self._requeue(batch)
                raise
            except Exception as e:
                depth = self._requeue(batch)
                FLUSHES.labels(result="failed").inc()
                logger.error("flush_failed", readings=len(batch), queued=depth, error=str(e))
                return 0
            finally:
                FLUSH_DURATION.observe(time.perf_counter() - started)

            self._last_flush = self._clock()
            QUEUE_DEPTH.set(len(self))
            FLUSHES.labels(result="ok").inc()
            logger.info("flushed", readings=len(batch))
            return len(batch)

    def _requeue(self, batch: list[DecodedReading]) -> int:
        with self._queue_lock:
            self._queue.extendleft(reversed(batch))
            depth = len(self._queue)
        QUEUE_DEPTH.set(depth)
        return depth

    async def drain(self) -> int:
        """Flush until the queue is empty or a delivery fails."""
        delivered = 0
        while len(self):
            sent = await self.flush()
            if sent == 0:
                break
            delivered += sent
        return delivered
