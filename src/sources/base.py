from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from core.models import RawFrame

FrameCallback = Callable[[RawFrame], None]


class FrameSource(ABC):
    """Push-based producer of raw CAN frames.

    ``start`` registers the callback and returns once the source is running;
    frames are then delivered one at a time on the event loop thread.
    """

    name: str = "source"

    @abstractmethod
    async def start(self, callback: FrameCallback) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    @property
    @abstractmethod
    def running(self) -> bool: ...
