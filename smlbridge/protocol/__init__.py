from smlbridge.protocol.obis import format_obis, parse_obis
from smlbridge.protocol.sml import (
    GET_LIST_RESPONSE,
    GetListResponse,
    ListEntry,
    SmlFile,
    SmlMessage,
    TypedValue,
    parse_sml_file,
)
from smlbridge.protocol.transport import SmlTransportReader, listen, wrap_frame

__all__ = [
    "GET_LIST_RESPONSE",
    "GetListResponse",
    "ListEntry",
    "SmlFile",
    "SmlMessage",
    "TypedValue",
    "parse_sml_file",
    "format_obis",
    "parse_obis",
    "SmlTransportReader",
    "listen",
    "wrap_frame",
]
