from __future__ import annotations

from typing import Iterator

from smlbridge.errors import ENTRY_FORMAT_FAULT, MISSING_VALUE_FAULT, SingleShotComplete
from smlbridge.protocol.sml import ListEntry, SmlFile
from smlbridge.runtime.formatter import ValueFormatter
from smlbridge.runtime.logging import JsonlLogger
from smlbridge.runtime.sink import RotatingSink


class RecordExtractor:
    def __init__(
        self,
        formatter: ValueFormatter,
        sink: RotatingSink,
        logger: JsonlLogger,
        *,
        single_shot: bool = False,
    ) -> None:
        self._formatter = formatter
        self._sink = sink
        self._logger = logger
        self._single_shot = bool(single_shot)
        self.records_written = 0

    def extract(self, tree: SmlFile) -> Iterator[tuple[int, list[ListEntry]]]:
        """Yields (message index, entries) for each get-list-response, in protocol order."""
        for message_index, message in enumerate(tree.messages):
            if not message.is_get_list_response():
                continue
            entries: list[ListEntry] = []
            for entry_index, entry in enumerate(message.body.val_list):
                if entry.value is None:
                    self._logger.warn(
                        MISSING_VALUE_FAULT,
                        {
                            "message_index": message_index,
                            "entry_index": entry_index,
                            "obj_name": entry.obj_name.hex(),
                        },
                    )
                    continue
                entries.append(entry)
            yield message_index, entries

    def _write_record(self, message_index: int, entries: list[ListEntry]) -> None:
        self._sink.begin_record()
        for entry in entries:
            try:
                field = self._formatter.format(entry)
            except ValueError as exc:
                self._logger.warn(
                    ENTRY_FORMAT_FAULT,
                    {
                        "message_index": message_index,
                        "obj_name": entry.obj_name.hex(),
                        "reason": str(exc),
                    },
                )
                continue
            if field is None:
                continue
            key, value = field
            self._sink.write_field(key, value)
        self._sink.end_record()
        self.records_written += 1

    def process(self, tree: SmlFile) -> int:
        """Writes one record per get-list-response and releases the tree on every path."""
        written = 0
        try:
            for message_index, entries in self.extract(tree):
                self._write_record(message_index, entries)
                written += 1
                if self._single_shot:
                    raise SingleShotComplete()
        finally:
            tree.release()
        return written
