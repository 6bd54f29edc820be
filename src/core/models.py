# src/core/models.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from .formula import Formula, compile_formula

MAX_PGN = 0x3FFFF  # 18 bit: DP + PF + PS
MAPPING_SCHEMA_V1 = "j1939-map-v1"


class Endianness(str, Enum):
    LITTLE = "LE"
    BIG = "BE"


_ENDIAN_ALIASES = {
    "le": Endianness.LITTLE,
    "little": Endianness.LITTLE,
    "littleendian": Endianness.LITTLE,
    "intel": Endianness.LITTLE,
    "be": Endianness.BIG,
    "big": Endianness.BIG,
    "bigendian": Endianness.BIG,
    "motorola": Endianness.BIG,
}


class SpnRule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    spn: int = Field(ge=0)
    signal_name: str = Field(alias="sig", min_length=1)
    source: str = Field(alias="src", default="ECM")
    unit: str = ""
    byte_indices: tuple[int, ...] = Field(alias="bytes", min_length=1, max_length=8)
    endianness: Endianness = Field(alias="endian", default=Endianness.LITTLE)
    scale: float = 1.0
    offset: float = 0.0
    formula: str | None = None

    _compiled: Formula | None = PrivateAttr(default=None)

    @field_validator("endianness", mode="before")
    @classmethod
    def _normalize_endianness(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _ENDIAN_ALIASES.get(value.replace("_", "").replace("-", "").lower(), value)
        return value

    @field_validator("byte_indices")
    @classmethod
    def _check_byte_indices(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        for index in value:
            if not 0 <= index <= 7:
                raise ValueError(f"byte index {index} outside 0..7")
        # 4-byte signals are read as one contiguous 32-bit word
        if len(value) == 4 and value[0] > 4:
            raise ValueError(f"32-bit signal starting at byte {value[0]} overruns the frame")
        return value

    @field_validator("formula")
    @classmethod
    def _blank_formula(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _compile_formula(self) -> SpnRule:
        if self.formula is not None:
            self._compiled = compile_formula(self.formula)
        return self

    @property
    def width(self) -> int:
        return len(self.byte_indices)

    @property
    def compiled_formula(self) -> Formula | None:
        return self._compiled


class PgnRule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    pgn: int = Field(ge=0, le=MAX_PGN)
    name: str = ""
    spns: tuple[SpnRule, ...] = ()


class MappingModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    schema_id: str = Field(alias="schema", default=MAPPING_SCHEMA_V1, min_length=1)
    notes: str = ""
    rules: tuple[PgnRule, ...] = Field(alias="signals", default=())

    _index: dict[int, PgnRule] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _build_index(self) -> MappingModel:
        index: dict[int, PgnRule] = {}
        for rule in self.rules:
            if rule.pgn in index:
                raise ValueError(f"duplicate PGN {rule.pgn}")
            index[rule.pgn] = rule
        self._index = index
        return self

    def rule_for(self, pgn: int) -> PgnRule | None:
        return self._index.get(pgn)

    @property
    def pgns(self) -> list[int]:
        return [rule.pgn for rule in self.rules]

    def __len__(self) -> int:
        return len(self.rules)


class RawFrame(BaseModel):
    identifier: int = Field(ge=0, le=0xFFFFFFFF)
    payload: bytes = Field(max_length=8)
    # capture time supplied by the frame source, if it has one
    timestamp: datetime | None = None


class DecodedReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    equipment_id: str
    signal_name: str
    value: float | None
    unit: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = "normal"
    source: str
    spn: int
    pgn: int
    source_address: int = Field(ge=0, le=0xFF)

    @property
    def sensor_type(self) -> str:
        return f"j1939_{self.signal_name}"

    def as_telemetry(self) -> dict[str, Any]:
        """Field set posted to the telemetry readings endpoint."""
        return {
            "equipmentId": self.equipment_id,
            "sensorType": self.sensor_type,
            "value": self.value,
            "unit": self.unit,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "context": {
                "source": self.source,
                "spn": self.spn,
                "protocol": "j1939",
            },
        }
