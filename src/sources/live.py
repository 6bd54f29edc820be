from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import can
import structlog

from config import CanConfig
from core.models import RawFrame

from .base import FrameCallback, FrameSource

logger = structlog.get_logger(__name__)


class LiveFrameSource(FrameSource):
    """Frames from a python-can bus (SocketCAN by default).

    A bus that cannot be opened leaves the source idle instead of failing the
    collector: other collectors on the host, or a test rig, may still be useful.
    """

    name = "live"

    def __init__(self, config: CanConfig) -> None:
        self.config = config
        self._bus: can.BusABC | None = None
        self._notifier: can.Notifier | None = None
        self._callback: FrameCallback | None = None

    @property
    def running(self) -> bool:
        return self._notifier is not None

    async def start(self, callback: FrameCallback) -> None:
        self._callback = callback

        try:
            self._bus = can.Bus(
                channel=self.config.channel,
                interface=self.config.interface,
                bitrate=self.config.bitrate,
            )
        except (can.CanError, OSError, ValueError, ImportError, NotImplementedError) as e:
            logger.error(
                "can_bus_unavailable",
                interface=self.config.interface,
                channel=self.config.channel,
                error=str(e),
            )
            self._bus = None
            return

        self._notifier = can.Notifier(self._bus, [self._on_message], loop=asyncio.get_running_loop())
        logger.info(
            "can_bus_listening",
            interface=self.config.interface,
            channel=self.config.channel,
            bitrate=self.config.bitrate,
        )

    def _on_message(self, msg: can.Message) -> None:
        if msg is None or msg.is_error_frame or msg.is_remote_frame or self._callback is None:
            return

        timestamp = (
            datetime.fromtimestamp(msg.timestamp, tz=timezone.utc) if msg.timestamp else None
        )
        frame = RawFrame(
            identifier=msg.arbitration_id & 0xFFFFFFFF,
            payload=bytes(msg.data[:8]),
            timestamp=timestamp,
        )
        self._callback(frame)

    async def stop(self) -> None:
        if self._notifier is not None:
            self._notifier.stop()
            self._notifier = None

        if self._bus is not None:
            try:
                self._bus.shutdown()
            except (can.CanError, OSError) as e:
                logger.warning("can_bus_shutdown_error", error=str(e))
            self._bus = None
            logger.info("can_bus_closed", channel=self.config.channel)
