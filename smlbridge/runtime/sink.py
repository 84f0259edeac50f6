from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import TextIO

from smlbridge.errors import ClockReadError, SinkOpenError, SinkReopenError
from smlbridge.runtime.clock import Clock, RealClock, split_ns
from smlbridge.runtime.logging import JsonlLogger

STDOUT_PATH = "-"
DEFAULT_ROTATE_EVERY = 60


class RotatingSink:
    """
    Writes one JSON object line per record:
      {"ts": <sec>.<nsec>, "<obis>": <value>, ... }

    A file sink is renamed to `<path>.<unix seconds>` after `rotate_every`
    records and reopened at `<path>`. The stdout sink ("-") never rotates.
    Only one writer handle is open at any time.
    """

    def __init__(
        self,
        path: str = STDOUT_PATH,
        *,
        clock: Clock | None = None,
        rotate_every: int = DEFAULT_ROTATE_EVERY,
        stream: TextIO | None = None,
        logger: JsonlLogger | None = None,
    ) -> None:
        if rotate_every <= 0:
            raise ValueError("rotate_every must be > 0")
        self._path = str(path)
        self._clock = clock or RealClock()
        self._rotate_every = int(rotate_every)
        self._logger = logger
        self._is_stdout = self._path == STDOUT_PATH
        self._records_since_rotation = 0
        self._separator = ""
        if self._is_stdout:
            self._fh: TextIO | None = stream if stream is not None else sys.stdout
        else:
            self._fh = self._open(SinkOpenError)

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_stdout(self) -> bool:
        return self._is_stdout

    @property
    def records_since_rotation(self) -> int:
        return self._records_since_rotation

    def _open(self, error: type[SinkOpenError]) -> TextIO:
        try:
            return Path(self._path).open("a", encoding="utf-8")
        except OSError as exc:
            raise error(f"cannot open output {self._path}: {exc}") from exc

    def _writer(self) -> TextIO:
        if self._fh is None:
            raise RuntimeError("sink is closed")
        return self._fh

    def begin_record(self) -> None:
        fh = self._writer()
        fh.write("{")
        self._separator = ""
        try:
            sec, nsec = split_ns(self._clock.now_ns())
        except (ClockReadError, OSError) as exc:
            if self._logger:
                self._logger.warn("clock_read_failed", {"reason": str(exc)})
            return
        fh.write(f'"ts": {sec}.{nsec:09d}')
        self._separator = ", "

    def write_field(self, key: str, value: str) -> None:
        self._writer().write(f"{self._separator}{json.dumps(key)}: {value}")
        self._separator = ", "

    def end_record(self) -> None:
        fh = self._writer()
        fh.write(" }\n")
        fh.flush()
        self._separator = ""
        self._records_since_rotation += 1
        if not self._is_stdout and self._records_since_rotation >= self._rotate_every:
            self.rotate()

    def rotate(self) -> str | None:
        """Closes the current file, renames it with a timestamp suffix and reopens the path."""
        if self._is_stdout:
            return None
        self._records_since_rotation = 0
        try:
            sec, _ = split_ns(self._clock.now_ns())
        except (ClockReadError, OSError) as exc:
            if self._logger:
                self._logger.warn("rotate_skipped", {"path": self._path, "reason": str(exc)})
            return None
        rotated: str | None = f"{self._path}.{sec}"
        fh = self._writer()
        self._fh = None
        fh.close()
        try:
            os.rename(self._path, rotated)
        except OSError as exc:
            if self._logger:
                self._logger.warn("rotate_rename_failed", {"path": self._path, "reason": str(exc)})
            rotated = None
        self._fh = self._open(SinkReopenError)
        return rotated

    def close(self) -> None:
        fh = self._fh
        self._fh = None
        if fh is not None and not self._is_stdout:
            fh.close()

    def __enter__(self) -> "RotatingSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.close()
