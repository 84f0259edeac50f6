from __future__ import annotations

OBIS_CODE_BYTES = 6


def format_obis(obj_name: bytes) -> str:
    if len(obj_name) != OBIS_CODE_BYTES:
        raise ValueError(f"object code must be {OBIS_CODE_BYTES} bytes, got {len(obj_name)}")
    a, b, c, d, e, f = obj_name
    return f"{a}-{b}:{c}.{d}.{e}*{f}"


def parse_obis(text: str) -> bytes:
    try:
        ab, rest = text.split(":", 1)
        a, b = ab.split("-", 1)
        cde, f = rest.split("*", 1)
        c, d, e = cde.split(".", 2)
        parts = [int(part) for part in (a, b, c, d, e, f)]
    except ValueError as exc:
        raise ValueError(f"invalid OBIS code: {text!r}") from exc
    if any(part < 0 or part > 255 for part in parts):
        raise ValueError(f"OBIS components must be 0..255: {text!r}")
    return bytes(parts)
