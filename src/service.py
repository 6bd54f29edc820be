from __future__ import annotations

import asyncio

import structlog

from config import Settings
from core.batch import BatchCollector, ReadingSink
from core.decoder import FrameDispatcher
from core.exceptions import MappingError
from core.mapping import default_mapping, load_mapping
from core.models import MappingModel, RawFrame
from interfaces.http.sink import TelemetrySink
from sources import FrameSource, create_frame_source

logger = structlog.get_logger(__name__)

STATS_EVERY = 1000


class CollectorService:
    """Owns one collector: mapping, frame source, batch queue and flush timer."""

    def __init__(
        self,
        settings: Settings,
        source: FrameSource | None = None,
        sink: ReadingSink | None = None,
        mapping: MappingModel | None = None,
    ) -> None:
        self.settings = settings
        self.source = source or create_frame_source(settings)
        self.sink = sink or TelemetrySink(settings.sink, settings.device_id)
        self.mapping = mapping

        self.dispatcher: FrameDispatcher | None = None
        self.batch: BatchCollector | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._stopped = asyncio.Event()
        self._closing = asyncio.Event()
        self.running = False
        self._starting = False
        self._stop_requested = False
        self.stats: dict[str, int] = {"frames": 0, "mapped": 0, "readings": 0}

    def _load_mapping(self) -> MappingModel:
        if self.mapping is not None:
            return self.mapping
        if self.settings.mapping_file is None:
            logger.info("mapping_default")
            return default_mapping()
        return load_mapping(self.settings.mapping_file)

    async def start(self) -> None:
        if self.running or self._starting:
            return

        self._starting = True
        self._stop_requested = False
        try:
            await self._start()
        finally:
            self._starting = False

        if self._stop_requested:
            logger.info("collector_stop_deferred", device_id=self.settings.device_id)
            await self.stop()

    async def _start(self) -> None:
        logger.info(
            "collector_starting",
            device_id=self.settings.device_id,
            source=self.source.name,
            max_batch_size=self.settings.batch.max_batch_size,
            flush_interval_ms=self.settings.batch.flush_interval_ms,
        )

        try:
            self.mapping = self._load_mapping()
        except MappingError as e:
            logger.error("collector_start_failed", error=str(e))
            raise

        self.dispatcher = FrameDispatcher(self.mapping, self.settings.device_id)
        if self.batch is None:
            # survives restarts together with any backlog left by stop()
            self.batch = BatchCollector(
                self.sink,
                max_batch_size=self.settings.batch.max_batch_size,
                flush_interval_ms=self.settings.batch.flush_interval_ms,
                max_queue_size=self.settings.batch.max_queue_size,
            )

        self._stopped.clear()
        self._closing.clear()
        self._tick_task = asyncio.create_task(self._tick_loop(), name="j1939-flush-tick")
        try:
            await self.source.start(self.handle_frame)
        except Exception as e:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None
            logger.error("collector_start_failed", source=self.source.name, error=str(e))
            raise

        self.running = True
        logger.info("collector_started", device_id=self.settings.device_id, pgns=len(self.mapping))

    def handle_frame(self, frame: RawFrame) -> None:
        assert self.dispatcher is not None and self.batch is not None

        self.stats["frames"] += 1
        readings = self.dispatcher.dispatch(frame)
        if readings:
            self.stats["mapped"] += 1
            self.stats["readings"] += len(readings)
            self.batch.enqueue(readings)

        if self.stats["frames"] % STATS_EVERY == 0:
            logger.info("stats", **self.stats)

    async def _tick_loop(self) -> None:
        assert self.batch is not None
        interval = self.settings.batch.tick_ms / 1000.0
        while not self._closing.is_set():
            try:
                await asyncio.wait_for(self._closing.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            else:
                break

            try:
                await self.batch.tick()
            except Exception as e:
                logger.error("flush_tick_error", error=str(e))

    async def stop(self) -> None:
        if not self.running:
            if self._starting:
                # a signal during start(); honoured once start() returns
                self._stop_requested = True
            return
        self.running = False
        logger.info("collector_stopping", device_id=self.settings.device_id)

        await self.source.stop()

        if self._tick_task is not None:
            # let an in-flight flush finish instead of cancelling it
            self._closing.set()
            await self._tick_task
            self._tick_task = None

        assert self.batch is not None
        # waits for an in-flight flush through the batch flush lock
        delivered = await self.batch.drain()
        remaining = len(self.batch)
        if remaining:
            logger.warning("collector_stopped_with_backlog", undelivered=remaining)

        close = getattr(self.sink, "close", None)
        if close is not None:
            await close()

        self._stopped.set()
        logger.info("collector_stopped", delivered_on_stop=delivered, final_stats=self.stats)

    async def serve(self) -> None:
        """Block until :meth:`stop` has completed."""
        await self._stopped.wait()
