from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Sequence

from smlbridge.errors import ParseError

TL_MORE = 0x80
TL_TYPE_MASK = 0x70
TL_LENGTH_MASK = 0x0F

TYPE_OCTET_STRING = 0x00
TYPE_BOOLEAN = 0x40
TYPE_INTEGER = 0x50
TYPE_UNSIGNED = 0x60
TYPE_LIST = 0x70

OPTIONAL_ABSENT = 0x01
END_OF_MESSAGE = 0x00

MESSAGE_FIELDS = 6
GET_LIST_RESPONSE_FIELDS = 7
LIST_ENTRY_FIELDS = 7

OPEN_REQUEST = 0x0100
OPEN_RESPONSE = 0x0101
CLOSE_REQUEST = 0x0200
CLOSE_RESPONSE = 0x0201
GET_PROFILE_PACK_REQUEST = 0x0300
GET_PROFILE_PACK_RESPONSE = 0x0301
GET_PROFILE_LIST_REQUEST = 0x0400
GET_PROFILE_LIST_RESPONSE = 0x0401
GET_PROC_PARAMETER_REQUEST = 0x0500
GET_PROC_PARAMETER_RESPONSE = 0x0501
SET_PROC_PARAMETER_REQUEST = 0x0600
GET_LIST_REQUEST = 0x0700
GET_LIST_RESPONSE = 0x0701
ATTENTION_RESPONSE = 0xFF01

MESSAGE_TAG_NAMES = {
    OPEN_REQUEST: "open_request",
    OPEN_RESPONSE: "open_response",
    CLOSE_REQUEST: "close_request",
    CLOSE_RESPONSE: "close_response",
    GET_PROFILE_PACK_REQUEST: "get_profile_pack_request",
    GET_PROFILE_PACK_RESPONSE: "get_profile_pack_response",
    GET_PROFILE_LIST_REQUEST: "get_profile_list_request",
    GET_PROFILE_LIST_RESPONSE: "get_profile_list_response",
    GET_PROC_PARAMETER_REQUEST: "get_proc_parameter_request",
    GET_PROC_PARAMETER_RESPONSE: "get_proc_parameter_response",
    SET_PROC_PARAMETER_REQUEST: "set_proc_parameter_request",
    GET_LIST_REQUEST: "get_list_request",
    GET_LIST_RESPONSE: "get_list_response",
    ATTENTION_RESPONSE: "attention_response",
}

ValueKind = Literal["octet_string", "boolean", "integer", "unsigned", "other"]


def tag_name(tag: int) -> str:
    return MESSAGE_TAG_NAMES.get(tag, f"unknown_0x{tag:04x}")


@dataclass(frozen=True)
class TypedValue:
    kind: ValueKind
    data: Any
    width: int = 0

    def is_numeric(self) -> bool:
        return self.kind in ("integer", "unsigned")


@dataclass(frozen=True)
class ListEntry:
    obj_name: bytes
    value: TypedValue | None
    scaler: int | None = None
    unit: int | None = None
    status: int | None = None
    val_time: int | None = None
    value_signature: bytes | None = None


@dataclass(frozen=True)
class GetListResponse:
    server_id: bytes | None
    val_list: tuple[ListEntry, ...]
    client_id: bytes | None = None
    list_name: bytes | None = None
    act_sensor_time: int | None = None
    list_signature: bytes | None = None
    act_gateway_time: int | None = None


@dataclass(frozen=True)
class SmlMessage:
    transaction_id: bytes
    group_no: int
    abort_on_error: int
    tag: int
    body: Any
    crc: int | None = None

    @property
    def tag_name(self) -> str:
        return tag_name(self.tag)

    def is_get_list_response(self) -> bool:
        return self.tag == GET_LIST_RESPONSE and isinstance(self.body, GetListResponse)


class SmlFile:
    """
    Decoded messages of one transport frame.

    The owner must call `release()` exactly once when done; the messages are
    not reachable afterwards.
    """

    def __init__(self, messages: Sequence[SmlMessage]) -> None:
        self._messages = tuple(messages)
        self._released = False

    @property
    def messages(self) -> tuple[SmlMessage, ...]:
        if self._released:
            raise RuntimeError("message tree already released")
        return self._messages

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            raise RuntimeError("message tree already released")
        self._released = True
        self._messages = ()

    def __len__(self) -> int:
        return len(self._messages)

    def __enter__(self) -> "SmlFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        if not self._released:
            self.release()


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    @property
    def pos(self) -> int:
        return self._pos

    def remaining(self) -> int:
        return len(self._data) - self._pos

    def peek(self) -> int:
        if self._pos >= len(self._data):
            raise ParseError("unexpected end of data", self._pos)
        return self._data[self._pos]

    def take(self, count: int) -> bytes:
        if count > self.remaining():
            raise ParseError(f"need {count} bytes, {self.remaining()} left", self._pos)
        chunk = self._data[self._pos : self._pos + count]
        self._pos += count
        return chunk

    def read_tl(self) -> tuple[int, int]:
        offset = self._pos
        byte = self.take(1)[0]
        kind = byte & TL_TYPE_MASK
        length = byte & TL_LENGTH_MASK
        tl_bytes = 1
        while byte & TL_MORE:
            byte = self.take(1)[0]
            length = (length << 4) | (byte & TL_LENGTH_MASK)
            tl_bytes += 1
        if kind != TYPE_LIST:
            # Octet/scalar lengths count the TL bytes themselves.
            length -= tl_bytes
            if length < 0:
                raise ParseError(f"invalid TL byte 0x{self._data[offset]:02x}", offset)
        return kind, length

    def read_element(self) -> Any:
        offset = self._pos
        if self.peek() == OPTIONAL_ABSENT:
            self._pos += 1
            return None
        kind, length = self.read_tl()
        if kind == TYPE_LIST:
            return [self.read_element() for _ in range(length)]
        payload = self.take(length)
        if kind == TYPE_OCTET_STRING:
            return TypedValue("octet_string", payload, length)
        if kind == TYPE_BOOLEAN:
            if length != 1:
                raise ParseError(f"boolean must be 1 byte, got {length}", offset)
            return TypedValue("boolean", payload[0] != 0, 1)
        if kind in (TYPE_INTEGER, TYPE_UNSIGNED):
            if length < 1 or length > 8:
                raise ParseError(f"numeric width must be 1..8 bytes, got {length}", offset)
            if kind == TYPE_INTEGER:
                return TypedValue("integer", int.from_bytes(payload, "big", signed=True), length)
            return TypedValue("unsigned", int.from_bytes(payload, "big", signed=False), length)
        raise ParseError(f"unknown TL type 0x{kind:02x}", offset)


def _expect_list(element: Any, size: int, what: str, offset: int) -> list:
    if not isinstance(element, list):
        raise ParseError(f"{what} must be a list", offset)
    if len(element) != size:
        raise ParseError(f"{what} must have {size} elements, got {len(element)}", offset)
    return element


def _octets(element: Any, what: str, offset: int) -> bytes | None:
    if element is None:
        return None
    if isinstance(element, TypedValue) and element.kind == "octet_string":
        return element.data
    raise ParseError(f"{what} must be an octet string", offset)


def _number(element: Any, what: str, offset: int) -> int | None:
    if element is None:
        return None
    if isinstance(element, TypedValue) and element.is_numeric():
        return int(element.data)
    raise ParseError(f"{what} must be numeric", offset)


def _scaler(element: Any, offset: int) -> int | None:
    scaler = _number(element, "scaler", offset)
    if scaler is None:
        return None
    # Some meters send the scaler as unsigned8; it is always a signed exponent.
    if element.kind == "unsigned" and element.width == 1 and scaler > 127:
        scaler -= 256
    return scaler


def _sml_time(element: Any, offset: int) -> int | None:
    if element is None:
        return None
    if isinstance(element, TypedValue) and element.is_numeric():
        return int(element.data)
    if isinstance(element, list) and len(element) == 2:
        value = element[1]
        if isinstance(value, list) and value:
            # localTimestamp: [timestamp, local offset, season offset]
            value = value[0]
        if isinstance(value, TypedValue) and value.is_numeric():
            return int(value.data)
    raise ParseError("invalid SML time", offset)


def _value(element: Any) -> TypedValue | None:
    if element is None:
        return None
    if isinstance(element, TypedValue):
        return element
    return TypedValue("other", element, 0)


def _list_entry(element: Any, offset: int) -> ListEntry:
    fields = _expect_list(element, LIST_ENTRY_FIELDS, "list entry", offset)
    obj_name, status, val_time, unit, scaler, value, signature = fields
    status_value = status.data if isinstance(status, TypedValue) and status.is_numeric() else None
    return ListEntry(
        obj_name=_octets(obj_name, "obj_name", offset) or b"",
        value=_value(value),
        scaler=_scaler(scaler, offset),
        unit=_number(unit, "unit", offset),
        status=status_value,
        val_time=_sml_time(val_time, offset),
        value_signature=_octets(signature, "value_signature", offset),
    )


def _get_list_response(element: Any, offset: int) -> GetListResponse:
    fields = _expect_list(element, GET_LIST_RESPONSE_FIELDS, "get-list-response", offset)
    client_id, server_id, list_name, sensor_time, val_list, signature, gateway_time = fields
    if val_list is None:
        entries: tuple[ListEntry, ...] = ()
    elif isinstance(val_list, list):
        entries = tuple(_list_entry(item, offset) for item in val_list)
    else:
        raise ParseError("val_list must be a list", offset)
    return GetListResponse(
        server_id=_octets(server_id, "server_id", offset),
        val_list=entries,
        client_id=_octets(client_id, "client_id", offset),
        list_name=_octets(list_name, "list_name", offset),
        act_sensor_time=_sml_time(sensor_time, offset),
        list_signature=_octets(signature, "list_signature", offset),
        act_gateway_time=_sml_time(gateway_time, offset),
    )


def _parse_message(reader: _Reader) -> SmlMessage:
    offset = reader.pos
    kind, length = reader.read_tl()
    if kind != TYPE_LIST or length != MESSAGE_FIELDS:
        raise ParseError(f"message must be a list of {MESSAGE_FIELDS} elements", offset)
    transaction_id = _octets(reader.read_element(), "transaction_id", offset) or b""
    group_no = _number(reader.read_element(), "group_no", offset) or 0
    abort_on_error = _number(reader.read_element(), "abort_on_error", offset) or 0
    body = _expect_list(reader.read_element(), 2, "message body", offset)
    tag = _number(body[0], "message tag", offset)
    if tag is None:
        raise ParseError("message tag is missing", offset)
    crc = _number(reader.read_element(), "crc", offset)
    end_offset = reader.pos
    if reader.take(1)[0] != END_OF_MESSAGE:
        raise ParseError("missing end-of-message marker", end_offset)
    data = body[1]
    if tag == GET_LIST_RESPONSE:
        data = _get_list_response(data, offset)
    return SmlMessage(
        transaction_id=transaction_id,
        group_no=group_no,
        abort_on_error=abort_on_error,
        tag=tag,
        body=data,
        crc=crc,
    )


def parse_sml_file(data: bytes) -> SmlFile:
    reader = _Reader(data)
    messages: list[SmlMessage] = []
    while reader.remaining():
        if reader.peek() == END_OF_MESSAGE:
            # Fill bytes padding the transport frame to a multiple of 4.
            reader.take(1)
            continue
        messages.append(_parse_message(reader))
    return SmlFile(messages)
