from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from core.models import DecodedReading, RawFrame


class TestRawFrame:
    def test_valid_creation(self):
        frame = RawFrame(identifier=0x18F00400, payload=bytes(8))
        assert frame.identifier == 0x18F00400
        assert len(frame.payload) == 8
        assert frame.timestamp is None

    def test_short_payload_allowed(self):
        assert RawFrame(identifier=1, payload=b"\x01\x02").payload == b"\x01\x02"

    def test_payload_validation(self):
        with pytest.raises(ValidationError):
            RawFrame(identifier=1, payload=bytes(9))

    def test_identifier_validation(self):
        RawFrame(identifier=0xFFFFFFFF, payload=b"")
        with pytest.raises(ValidationError):
            RawFrame(identifier=-1, payload=b"")
        with pytest.raises(ValidationError):
            RawFrame(identifier=0x100000000, payload=b"")


class TestDecodedReading:
    @pytest.fixture
    def reading(self):
        return DecodedReading(
            equipment_id="ENG001",
            signal_name="engine_rpm",
            value=582.5,
            unit="rpm",
            timestamp=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
            source="ECM",
            spn=190,
            pgn=61444,
            source_address=0,
        )

    def test_sensor_type(self, reading):
        assert reading.sensor_type == "j1939_engine_rpm"

    def test_telemetry_payload(self, reading):
        assert reading.as_telemetry() == {
            "equipmentId": "ENG001",
            "sensorType": "j1939_engine_rpm",
            "value": 582.5,
            "unit": "rpm",
            "timestamp": "2024-01-01T12:00:00+00:00",
            "status": "normal",
            "context": {"source": "ECM", "spn": 190, "protocol": "j1939"},
        }

    def test_default_timestamp_is_utc(self):
        reading = DecodedReading(
            equipment_id="E", signal_name="s", value=1.0, source="ECM", spn=1, pgn=1, source_address=0
        )
        assert reading.timestamp.tzinfo is not None

    def test_frozen(self, reading):
        with pytest.raises(ValidationError):
            reading.value = 1.0
