from __future__ import annotations

import asyncio
import signal

import uvloop

from config import get_settings
from service import CollectorService
from utils.logging import setup_logging
from utils.metrics import MetricsServer


async def main() -> None:
    settings = get_settings()
    logger = setup_logging(
        settings.logging.level,
        settings.logging.format,
        settings.logging.log_file if settings.logging.log_to_file else None,
    )

    service = CollectorService(settings)
    metrics_server = MetricsServer(settings.metrics)

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        asyncio.create_task(service.stop())

    loop = asyncio.get_running_loop()
    for sig in [signal.SIGINT, signal.SIGTERM]:
        loop.add_signal_handler(sig, signal_handler)

    try:
        await metrics_server.start()
        await service.start()
    except Exception as e:
        logger.error("service_error", error=str(e))
        raise

    await service.serve()
    await metrics_server.stop()


def run() -> None:
    uvloop.run(main())


if __name__ == "__main__":
    run()
