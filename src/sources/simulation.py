"""Replay of recorded frames from a text log.

Log format, one frame per line::

    18F00400 00 00 00 34 12 FF FF FF

The first token is the hex identifier, the rest are up to eight hex payload
bytes. Blank lines and lines starting with ``#`` are ignored. The log is
replayed in a loop at a fixed rate until the source is stopped.
"""
from __future__ import annotations

import asyncio
import itertools
from pathlib import Path
from typing import Iterator

import structlog

from core.exceptions import FrameSourceError
from core.models import RawFrame

from .base import FrameCallback, FrameSource

logger = structlog.get_logger(__name__)

MAX_PAYLOAD = 8


def parse_log_line(line: str) -> RawFrame | None:
    """Parse one log line, or return None when the line carries no frame."""
    text = line.strip()
    if not text or text.startswith("#"):
        return None

    tokens = text.split()
    if len(tokens) < 2:
        return None

    try:
        identifier = int(tokens[0], 16)
        payload = bytes(int(token, 16) for token in tokens[1:MAX_PAYLOAD + 1])
    except ValueError:
        # bad hex digit or byte value above 0xFF
        return None

    if not 0 <= identifier <= 0xFFFFFFFF:
        return None

    return RawFrame(identifier=identifier, payload=payload)


def load_simulation_log(path: Path) -> list[RawFrame]:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise FrameSourceError(f"cannot read simulation log {path}: {e}") from e

    frames = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        frame = parse_log_line(line)
        if frame is None:
            if line.strip() and not line.lstrip().startswith("#"):
                logger.debug("simulation_line_skipped", file=str(path), line=lineno)
            continue
        frames.append(frame)
    return frames


class SimulationFrameSource(FrameSource):
    name = "simulation"

    def __init__(self, log_file: Path, rate_hz: float = 10.0) -> None:
        self.log_file = Path(log_file)
        self.interval = 1.0 / rate_hz
        self.frames: list[RawFrame] = []
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def replay(self) -> Iterator[RawFrame]:
        """Endless, restartable iteration over the loaded frames."""
        return itertools.cycle(self.frames)

    async def start(self, callback: FrameCallback) -> None:
        self.frames = load_simulation_log(self.log_file)
        if not self.frames:
            logger.warning("simulation_log_empty", file=str(self.log_file))
            return

        self._task = asyncio.create_task(self._run(callback), name="j1939-simulation")
        logger.info("simulation_started", file=str(self.log_file), frames=len(self.frames))

    async def _run(self, callback: FrameCallback) -> None:
        for frame in self.replay():
            # fresh copy so consumers never share a frame object between cycles
            callback(frame.model_copy())
            await asyncio.sleep(self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("simulation_stopped", file=str(self.log_file))
