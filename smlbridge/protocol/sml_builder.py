from __future__ import annotations

from typing import Any, Sequence

from smlbridge.protocol.sml import (
    END_OF_MESSAGE,
    GET_LIST_RESPONSE,
    OPTIONAL_ABSENT,
    TL_LENGTH_MASK,
    TL_MORE,
    TYPE_BOOLEAN,
    TYPE_INTEGER,
    TYPE_LIST,
    TYPE_OCTET_STRING,
    TYPE_UNSIGNED,
    TypedValue,
)

_TL_TYPES = {
    "octet_string": TYPE_OCTET_STRING,
    "boolean": TYPE_BOOLEAN,
    "integer": TYPE_INTEGER,
    "unsigned": TYPE_UNSIGNED,
}


def octets(data: bytes) -> TypedValue:
    return TypedValue("octet_string", bytes(data), len(data))


def boolean(flag: bool) -> TypedValue:
    return TypedValue("boolean", bool(flag), 1)


def _fit_width(value: int, signed: bool) -> int:
    for width in (1, 2, 4, 8):
        try:
            value.to_bytes(width, "big", signed=signed)
        except OverflowError:
            continue
        return width
    raise ValueError(f"value does not fit in 8 bytes: {value}")


def integer(value: int, width: int | None = None) -> TypedValue:
    return TypedValue("integer", int(value), width or _fit_width(int(value), True))


def unsigned(value: int, width: int | None = None) -> TypedValue:
    if value < 0:
        raise ValueError("unsigned value must be >= 0")
    return TypedValue("unsigned", int(value), width or _fit_width(int(value), False))


def _encode_tl(kind: int, length: int) -> bytes:
    if kind == TYPE_LIST:
        total = length
        size = 1
        while total >= 16**size:
            size += 1
    else:
        size = 1
        while length + size >= 16**size:
            size += 1
        total = length + size
    nibbles = [(total >> (4 * shift)) & TL_LENGTH_MASK for shift in range(size - 1, -1, -1)]
    out = bytearray()
    for index, nibble in enumerate(nibbles):
        byte = nibble
        if index == 0:
            byte |= kind
        if index < size - 1:
            byte |= TL_MORE
        out.append(byte)
    return bytes(out)


def encode_element(element: Any) -> bytes:
    if element is None:
        return bytes([OPTIONAL_ABSENT])
    if isinstance(element, (list, tuple)):
        return _encode_tl(TYPE_LIST, len(element)) + b"".join(
            encode_element(item) for item in element
        )
    if not isinstance(element, TypedValue) or element.kind not in _TL_TYPES:
        raise ValueError(f"cannot encode element: {element!r}")
    kind = _TL_TYPES[element.kind]
    if element.kind == "octet_string":
        payload = bytes(element.data)
    elif element.kind == "boolean":
        payload = b"\x01" if element.data else b"\x00"
    else:
        payload = int(element.data).to_bytes(
            element.width, "big", signed=element.kind == "integer"
        )
    return _encode_tl(kind, len(payload)) + payload


def list_entry(
    obj_name: bytes,
    value: Any,
    *,
    scaler: int | None = None,
    unit: int | None = None,
    status: int | None = None,
) -> list:
    return [
        octets(obj_name),
        unsigned(status) if status is not None else None,
        None,
        unsigned(unit, 1) if unit is not None else None,
        integer(scaler, 1) if scaler is not None else None,
        value,
        None,
    ]


def get_list_response(entries: Sequence[Any], server_id: bytes = b"\x0a\x01") -> list:
    return [None, octets(server_id), None, None, list(entries), None, None]


def encode_message(
    tag: int,
    body: Any,
    *,
    transaction_id: bytes = b"\x00\x01",
    group_no: int = 0,
    abort_on_error: int = 0,
    crc: int = 0,
) -> bytes:
    header = _encode_tl(TYPE_LIST, 6)
    parts = [
        octets(transaction_id),
        unsigned(group_no, 1),
        unsigned(abort_on_error, 1),
        [unsigned(tag, 2), body],
        unsigned(crc, 2),
    ]
    return header + b"".join(encode_element(part) for part in parts) + bytes([END_OF_MESSAGE])


def encode_get_list_response(entries: Sequence[Any], **kwargs: Any) -> bytes:
    return encode_message(GET_LIST_RESPONSE, get_list_response(entries), **kwargs)
