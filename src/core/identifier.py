from __future__ import annotations

PDU2_THRESHOLD = 240
# data page bit as read by the collector's PGN mapping (not the bit-24 DP of the J1939 layout)
DP_SHIFT = 17


def extract_pgn(identifier: int) -> int:
    """Return the Parameter Group Number carried by ``identifier``.

    Never raises: any integer yields some PGN, whether or not it is meaningful.
    Whether the PGN is valid is decided by the mapping lookup.
    """
    dp = (identifier >> DP_SHIFT) & 0x1
    pf = (identifier >> 16) & 0xFF
    ps = (identifier >> 8) & 0xFF

    if pf < PDU2_THRESHOLD:
        # PDU1: PS is the destination address, not part of the group number
        return (dp << 16) | (pf << 8)
    return (dp << 16) | (pf << 8) | ps


def decode_identifier(identifier: int) -> tuple[int, int]:
    """Return ``(pgn, source_address)``."""
    return extract_pgn(identifier), identifier & 0xFF
