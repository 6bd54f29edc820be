from config import Settings

from .base import FrameCallback, FrameSource
from .live import LiveFrameSource
from .simulation import SimulationFrameSource, load_simulation_log, parse_log_line


def create_frame_source(settings: Settings) -> FrameSource:
    """Simulation when a replay log is configured, the live bus otherwise."""
    if settings.simulation.log_file is not None:
        return SimulationFrameSource(settings.simulation.log_file, settings.simulation.rate_hz)
    return LiveFrameSource(settings.can)


__all__ = [
    "FrameCallback",
    "FrameSource",
    "LiveFrameSource",
    "SimulationFrameSource",
    "create_frame_source",
    "load_simulation_log",
    "parse_log_line",
]
