from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import structlog

from utils.metrics import FORMULA_FAILURES, FRAMES_RECEIVED, READINGS_DECODED, READINGS_DROPPED

from .exceptions import FormulaError, SpnDecodeError
from .identifier import decode_identifier
from .models import DecodedReading, Endianness, MappingModel, RawFrame, SpnRule

logger = structlog.get_logger(__name__)

# J1939 "error" / "not available" raw patterns by field width in bytes
SENTINELS: dict[int, frozenset[int]] = {
    1: frozenset({0xFF, 0xFE}),
    2: frozenset({0xFFFF, 0xFEFF, 0xFFFE}),
    4: frozenset({0xFFFFFFFF, 0xFEFFFFFF}),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def read_raw_value(payload: bytes, byte_indices: tuple[int, ...], endianness: Endianness) -> int:
    try:
        if len(byte_indices) == 1:
            return payload[byte_indices[0]]

        if len(byte_indices) == 2:
            b0, b1 = byte_indices
            if endianness is Endianness.LITTLE:
                return payload[b0] | (payload[b1] << 8)
            return (payload[b0] << 8) | payload[b1]

        if len(byte_indices) == 4:
            start = byte_indices[0]
            word = payload[start:start + 4]
            if len(word) != 4:
                raise IndexError(f"32-bit read at byte {start} overruns {len(payload)}-byte payload")
            return int.from_bytes(word, "little" if endianness is Endianness.LITTLE else "big")

        value = 0
        if endianness is Endianness.LITTLE:
            for i, index in enumerate(byte_indices):
                value |= payload[index] << (8 * i)
        else:
            for index in byte_indices:
                value = (value << 8) | payload[index]
        return value

    except IndexError as e:
        raise SpnDecodeError(
            f"byte indices {list(byte_indices)} outside {len(payload)}-byte payload"
        ) from e


def is_not_available(raw: int, width: int) -> bool:
    return raw in SENTINELS.get(width, frozenset())


def decode_spn(rule: SpnRule, payload: bytes) -> float | None:
    """Decode one signal from ``payload``.

    Returns ``None`` when the raw value is a "not available" / "error"
    sentinel. A failing formula degrades to the scaled value.
    """
    raw = read_raw_value(payload, rule.byte_indices, rule.endianness)
    if is_not_available(raw, rule.width):
        return None

    value = raw * rule.scale + rule.offset

    formula = rule.compiled_formula
    if formula is not None:
        try:
            value = formula(value)
        except FormulaError as e:
            FORMULA_FAILURES.inc()
            logger.warning("formula_failed", spn=rule.spn, formula=rule.formula, error=str(e))

    return value


class FrameDispatcher:
    """Turns raw frames into readings using a loaded mapping."""

    def __init__(
        self,
        mapping: MappingModel,
        equipment_id: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.mapping = mapping
        self.equipment_id = equipment_id
        self._clock = clock

    def dispatch(self, frame: RawFrame) -> list[DecodedReading]:
        pgn, source_address = decode_identifier(frame.identifier)

        pgn_rule = self.mapping.rule_for(pgn)
        if pgn_rule is None:
            FRAMES_RECEIVED.labels(status="unmapped").inc()
            return []

        FRAMES_RECEIVED.labels(status="mapped").inc()
        timestamp = frame.timestamp or self._clock()
        readings: list[DecodedReading] = []

        for spn_rule in pgn_rule.spns:
            try:
                value = decode_spn(spn_rule, frame.payload)
            except SpnDecodeError as e:
                READINGS_DROPPED.labels(reason="decode_error").inc()
                logger.debug("spn_decode_error", pgn=pgn, spn=spn_rule.spn, error=str(e))
                continue

            if value is None:
                READINGS_DROPPED.labels(reason="not_available").inc()
                continue

            readings.append(
                DecodedReading(
                    equipment_id=self.equipment_id,
                    signal_name=spn_rule.signal_name,
                    value=value,
                    unit=spn_rule.unit,
                    timestamp=timestamp,
                    status="normal",
                    source=spn_rule.source,
                    spn=spn_rule.spn,
                    pgn=pgn,
                    source_address=source_address,
                )
            )

        READINGS_DECODED.inc(len(readings))
        return readings
