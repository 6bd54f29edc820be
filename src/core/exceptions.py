from __future__ import annotations


class CollectorError(Exception):
    """Base class for collector errors."""


class MappingError(CollectorError):
    """Mapping document is missing, unreadable or fails validation."""


class FormulaError(CollectorError, ValueError):
    """Formula could not be compiled or evaluated."""


class SpnDecodeError(CollectorError):
    """Raw value could not be read from the frame payload."""


class FrameSourceError(CollectorError):
    """Frame source could not be started."""


class SinkDeliveryError(CollectorError):
    def __init__(self, failed: int, total: int, cause: BaseException | None = None) -> None:
        self.failed = failed
        self.total = total
        self.cause = cause
        message = f"{failed}/{total} readings not delivered"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
