from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson
import structlog
from pydantic import ValidationError

from .exceptions import MappingError
from .models import MAPPING_SCHEMA_V1, MappingModel

logger = structlog.get_logger(__name__)


def parse_mapping(document: dict[str, Any]) -> MappingModel:
    if not isinstance(document, dict):
        raise MappingError(f"mapping document must be an object, got {type(document).__name__}")
    if "signals" not in document:
        raise MappingError("mapping document has no 'signals' list")

    try:
        return MappingModel.model_validate(document)
    except ValidationError as e:
        raise MappingError(f"invalid mapping: {e}") from e


def load_mapping(path: Path) -> MappingModel:
    try:
        document = orjson.loads(Path(path).read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        logger.error("mapping_load_failed", file=str(path), error=str(e))
        raise MappingError(f"cannot read mapping {path}: {e}") from e

    mapping = parse_mapping(document)
    logger.info(
        "mapping_loaded",
        file=str(path),
        schema=mapping.schema_id,
        pgns=len(mapping),
        spns=sum(len(rule.spns) for rule in mapping.rules),
    )
    return mapping


def default_mapping() -> MappingModel:
    """Engine mapping used when no mapping file is configured."""
    return parse_mapping({
        "schema": MAPPING_SCHEMA_V1,
        "notes": (
            "Default engine mapping (EEC1, ET1, EFL/P1, LFE). "
            "Oil pressure (SPN 100) is read from byte 3, its EFL/P1 position, not byte 1."
        ),
        "signals": [
            {
                "pgn": 61444,
                "name": "EngineSpeed_EEC1",
                "spns": [
                    {"spn": 190, "sig": "engine_rpm", "src": "ECM", "unit": "rpm",
                     "bytes": [3, 4], "endian": "LE", "scale": 0.125, "offset": 0},
                ],
            },
            {
                "pgn": 65262,
                "name": "EngineTemperature_ET1",
                "spns": [
                    {"spn": 110, "sig": "coolant_temp", "src": "ECM", "unit": "°C",
                     "bytes": [0], "endian": "LE", "scale": 1, "offset": -40},
                ],
            },
            {
                "pgn": 65263,
                "name": "EngineFluidLevelPressure_EFLP1",
                "spns": [
                    {"spn": 100, "sig": "oil_pressure", "src": "ECM", "unit": "kPa",
                     "bytes": [3], "endian": "LE", "scale": 4, "offset": 0},
                ],
            },
            {
                "pgn": 65266,
                "name": "FuelEconomy_LFE",
                "spns": [
                    {"spn": 183, "sig": "fuel_rate", "src": "ECM", "unit": "L/h",
                     "bytes": [0, 1], "endian": "LE", "scale": 0.05, "offset": 0},
                ],
            },
        ],
    })
