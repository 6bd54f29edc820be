"""Convert a DBC database into a J1939 mapping document.

    python -m tools.dbc2map --in engine.dbc --out j1939.map.json --src ECM

Each message becomes a PGN rule and each byte-aligned signal of one to four
bytes becomes an SPN rule. Signals without an SPN (neither an ``SPN``
attribute nor an ``SPN<number>`` token in the name) or that do not sit on
byte boundaries are skipped with a warning.
"""
from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path
from typing import Any

import cantools
import orjson
import structlog

from core.identifier import extract_pgn
from core.mapping import parse_mapping
from core.models import MAPPING_SCHEMA_V1

logger = structlog.get_logger(__name__)

MAX_SIGNAL_BYTES = 4
_SPN_PATTERN = re.compile(r"SPN\s*_?(\d+)", re.IGNORECASE)


def signal_bytes(start: int, length: int, byte_order: str) -> list[int] | None:
    """Byte offsets covered by a signal, or None if it is not byte aligned.

    ``start`` follows DBC numbering: LSB position for little endian signals,
    MSB position (sawtooth) for big endian ones.
    """
    if length % 8:
        return None
    width = length // 8

    if byte_order == "little_endian":
        if start % 8:
            return None
    elif start % 8 != 7:
        return None

    first = start // 8
    indices = list(range(first, first + width))
    if indices[-1] > 7:
        return None
    return indices


def signal_spn(signal: Any) -> int | None:
    spn = getattr(signal, "spn", None)
    if spn is not None:
        return int(spn)
    match = _SPN_PATTERN.search(signal.name)
    return int(match.group(1)) if match else None


def message_pgn(message: Any) -> int:
    if message.is_extended_frame:
        return extract_pgn(message.frame_id)
    # plain BO_ ids are taken as the PGN itself
    return message.frame_id


def convert(db: cantools.database.can.Database, source: str = "ECM") -> dict[str, Any]:
    pgns: dict[int, dict[str, Any]] = {}

    for message in db.messages:
        pgn = message_pgn(message)
        rule = pgns.setdefault(pgn, {"pgn": pgn, "name": message.name, "spns": []})

        for signal in message.signals:
            spn = signal_spn(signal)
            if spn is None:
                logger.warning("signal_skipped", message=message.name, signal=signal.name, reason="no_spn")
                continue

            indices = signal_bytes(signal.start, signal.length, signal.byte_order)
            if indices is None or len(indices) > MAX_SIGNAL_BYTES:
                logger.warning("signal_skipped", message=message.name, signal=signal.name, reason="layout")
                continue

            rule["spns"].append({
                "spn": spn,
                "sig": signal.name,
                "src": source,
                "unit": signal.unit or "",
                "bytes": indices,
                "endian": "LE" if signal.byte_order == "little_endian" else "BE",
                "scale": signal.scale,
                "offset": signal.offset,
            })

    return {
        "schema": MAPPING_SCHEMA_V1,
        "notes": "auto-generated from DBC (byte-aligned subset)",
        "signals": list(pgns.values()),
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="DBC to J1939 mapping converter")
    parser.add_argument("--in", dest="input", type=Path, required=True, help="input .dbc file")
    parser.add_argument("--out", dest="output", type=Path, required=True, help="output mapping .json")
    parser.add_argument("--src", dest="source", default="ECM", help="source tag for every signal")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    db = cantools.database.load_file(str(args.input), database_format="dbc")
    document = convert(db, args.source)
    # refuse to write something the collector would not load
    parse_mapping(document)

    args.output.write_bytes(orjson.dumps(document, option=orjson.OPT_INDENT_2))
    spns = sum(len(rule["spns"]) for rule in document["signals"])
    logger.info("mapping_written", file=str(args.output), pgns=len(document["signals"]), spns=spns)
    return 0


if __name__ == "__main__":
    sys.exit(main())
