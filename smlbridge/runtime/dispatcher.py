from __future__ import annotations

from typing import Any, Callable, Dict

from smlbridge.errors import MalformedFrameError, ParseError
from smlbridge.protocol.obis import OBIS_CODE_BYTES, format_obis
from smlbridge.protocol.sml import SmlFile, SmlMessage, parse_sml_file
from smlbridge.protocol.transport import ENVELOPE_BYTES
from smlbridge.protocol.units import unit_name
from smlbridge.runtime.extractor import RecordExtractor
from smlbridge.runtime.logging import JsonlLogger

MIN_FRAME_BYTES = 2 * ENVELOPE_BYTES


def describe_message(index: int, message: SmlMessage) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "message_index": index,
        "tag": message.tag,
        "tag_name": message.tag_name,
        "transaction_id": message.transaction_id.hex(),
    }
    if message.is_get_list_response():
        body = message.body
        summary["server_id"] = body.server_id.hex() if body.server_id else None
        entries = []
        for entry in body.val_list:
            obis = (
                format_obis(entry.obj_name)
                if len(entry.obj_name) == OBIS_CODE_BYTES
                else entry.obj_name.hex()
            )
            entries.append(
                {
                    "obis": obis,
                    "kind": entry.value.kind if entry.value else None,
                    "scaler": entry.scaler,
                    "unit": unit_name(entry.unit),
                }
            )
        summary["entries"] = entries
    return summary


class FrameDispatcher:
    """
    Called once per resolved transport frame. Strips the 8-byte start and end
    envelopes, decodes the body and hands the tree to the extractor.
    """

    def __init__(
        self,
        extractor: RecordExtractor,
        logger: JsonlLogger,
        parse: Callable[[bytes], SmlFile] = parse_sml_file,
    ) -> None:
        self._extractor = extractor
        self._logger = logger
        self._parse = parse
        self.frames_seen = 0
        self.frames_rejected = 0

    def dispatch(self, buffer: bytes) -> int:
        if len(buffer) < MIN_FRAME_BYTES:
            raise MalformedFrameError(
                f"frame is {len(buffer)} bytes, need at least {MIN_FRAME_BYTES}"
            )
        tree = self._parse(bytes(buffer[ENVELOPE_BYTES:-ENVELOPE_BYTES]))
        with tree:
            if self._logger.verbose:
                for index, message in enumerate(tree.messages):
                    self._logger.debug("sml_message", describe_message(index, message))
            return self._extractor.process(tree)

    def __call__(self, buffer: bytes) -> None:
        frame_index = self.frames_seen
        self.frames_seen += 1
        try:
            self.dispatch(buffer)
        except MalformedFrameError as exc:
            self.frames_rejected += 1
            self._logger.warn(
                "frame_rejected",
                {"frame_index": frame_index, "frame_bytes": len(buffer), "reason": str(exc)},
            )
        except ParseError as exc:
            self.frames_rejected += 1
            self._logger.warn(
                "frame_parse_failed",
                {"frame_index": frame_index, "frame_bytes": len(buffer), "reason": str(exc)},
            )
