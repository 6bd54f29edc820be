from pathlib import Path

import pytest

from config import BatchConfig, MetricsConfig, Settings, SimulationConfig
from core.exceptions import SinkDeliveryError
from core.mapping import load_mapping
from core.models import RawFrame

FIXTURES = Path(__file__).parent / "fixtures"


class RecordingSink:
    """In-memory sink; fails while ``fail`` is set."""

    def __init__(self):
        self.batches = []
        self.fail = False
        self.closed = False

    @property
    def delivered(self):
        return [reading for batch in self.batches for reading in batch]

    async def send_batch(self, readings):
        if self.fail:
            raise SinkDeliveryError(len(readings), len(readings), ConnectionError("sink down"))
        self.batches.append(list(readings))

    async def close(self):
        self.closed = True


@pytest.fixture
def fixtures_dir():
    return FIXTURES


@pytest.fixture
def mapping():
    return load_mapping(FIXTURES / "engine.map.json")


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def test_settings():
    return Settings(
        device_id="ENG001",
        mapping_file=FIXTURES / "engine.map.json",
        batch=BatchConfig(tick_ms=20, max_batch_size=5, flush_interval_ms=100),
        simulation=SimulationConfig(log_file=FIXTURES / "j1939_sample.log", rate_hz=200),
        metrics=MetricsConfig(enabled=False),
    )


@pytest.fixture
def eec1_frame():
    return RawFrame(
        identifier=0x18F00400,
        payload=bytes([0x00, 0x00, 0x00, 0x34, 0x12, 0xFF, 0xFF, 0xFF]),
    )
