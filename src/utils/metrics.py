from __future__ import annotations

import structlog
from prometheus_client import Counter, Gauge, Histogram, start_http_server

from config import MetricsConfig

logger = structlog.get_logger(__name__)

FRAMES_RECEIVED = Counter("j1939_frames_received_total", "Frames seen on the bus", ["status"])
READINGS_DECODED = Counter("j1939_readings_decoded_total", "Readings produced by the SPN decoder")
READINGS_DROPPED = Counter("j1939_readings_dropped_total", "Readings not emitted or not kept", ["reason"])
FORMULA_FAILURES = Counter("j1939_formula_failures_total", "Formula evaluations that fell back to the scaled value")
FLUSHES = Counter("j1939_flushes_total", "Batch flush attempts", ["result"])
FLUSH_DURATION = Histogram("j1939_flush_duration_seconds", "Time spent delivering one batch")
QUEUE_DEPTH = Gauge("j1939_queue_depth", "Readings waiting for delivery")


class MetricsServer:
    def __init__(self, config: MetricsConfig) -> None:
        self.config = config
        self._started = False

    async def start(self) -> None:
        if self.config.enabled and not self._started:
            start_http_server(self.config.port, addr=self.config.host)
            self._started = True
            logger.info("metrics_server_started", host=self.config.host, port=self.config.port)

    async def stop(self) -> None:
        # prometheus_client's exposition thread is a daemon and exits with the process
        logger.info("metrics_server_stopped")
