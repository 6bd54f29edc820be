from .batch import BatchCollector
from .decoder import FrameDispatcher, decode_spn, read_raw_value
from .identifier import decode_identifier, extract_pgn
from .mapping import default_mapping, load_mapping, parse_mapping
from .models import DecodedReading, Endianness, MappingModel, PgnRule, RawFrame, SpnRule

__all__ = [
    "BatchCollector",
    "DecodedReading",
    "Endianness",
    "FrameDispatcher",
    "MappingModel",
    "PgnRule",
    "RawFrame",
    "SpnRule",
    "decode_identifier",
    "decode_spn",
    "default_mapping",
    "extract_pgn",
    "load_mapping",
    "parse_mapping",
    "read_raw_value",
]
