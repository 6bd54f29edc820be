from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor

import orjson
import requests
import structlog

from config import SinkConfig
from core.exceptions import SinkDeliveryError
from core.models import DecodedReading

logger = structlog.get_logger(__name__)

DEVICE_HEADER = "X-J1939-Device"


class TelemetrySink:
    """Posts readings to the telemetry readings endpoint, one request each.

    Requests run in a small thread pool so a batch goes out concurrently and
    the event loop is never blocked on the network.
    """

    def __init__(
        self,
        config: SinkConfig,
        device_id: str,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config
        self.device_id = device_id
        self.url = config.base_url.rstrip("/") + "/" + config.readings_path.lstrip("/")
        self._owns_session = session is None
        self._session = session
        if session is not None:
            self._prepare(session)
        # created on first use, dropped by close()
        self._executor: ThreadPoolExecutor | None = None

    def _prepare(self, session: requests.Session) -> requests.Session:
        session.headers.update({
            "Content-Type": "application/json",
            DEVICE_HEADER: self.device_id,
        })
        return session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self._prepare(requests.Session())
        return self._session

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.max_workers, thread_name_prefix="telemetry-sink"
            )
        return self._executor

    def _post(self, session: requests.Session, reading: DecodedReading) -> None:
        response = session.post(
            self.url,
            data=orjson.dumps(reading.as_telemetry()),
            timeout=self.config.timeout_s,
        )
        response.raise_for_status()

    async def send(self, reading: DecodedReading) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._pool(), self._post, self.session, reading)

    async def send_batch(self, readings: list[DecodedReading]) -> None:
        """Deliver every reading; raise SinkDeliveryError if any of them failed.

        The batch is all-or-nothing from the caller's point of view: on error
        the whole batch is retried, and readings that did arrive may be
        delivered again.
        """
        if not readings:
            return

        results = await asyncio.gather(
            *(self.send(reading) for reading in readings), return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            logger.warning(
                "sink_delivery_failed",
                url=self.url,
                failed=len(errors),
                total=len(readings),
                error=str(errors[0]),
            )
            raise SinkDeliveryError(len(errors), len(readings), errors[0])

        logger.debug("sink_batch_delivered", url=self.url, readings=len(readings))

    async def close(self) -> None:
        executor, self._executor = self._executor, None
        if executor is not None:
            # waits for in-flight posts without blocking the event loop
            await asyncio.get_running_loop().run_in_executor(None, executor.shutdown)

        if self._session is not None:
            self._session.close()
            if self._owns_session:
                self._session = None
