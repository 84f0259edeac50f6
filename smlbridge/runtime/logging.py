from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, TextIO

from smlbridge.errors import LogOpenError
from smlbridge.runtime.clock import Clock, RealClock


class JsonlLogger:
    """
    Diagnostic events as JSON lines, one object per event:
      {"ts_ms": ..., "level": "warn" | "debug", "event": ..., <fields>}

    Events go to stderr unless a log path is given (append mode). Debug events
    are dropped unless `verbose` is set.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        verbose: bool = False,
        clock: Clock | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self._clock = clock or RealClock()
        self._verbose = bool(verbose)
        self._owns_fh = False
        if path is not None:
            log_path = Path(path)
            try:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                self._fh: TextIO = log_path.open("a", encoding="utf-8")
            except OSError as exc:
                raise LogOpenError(f"cannot open log file {log_path}: {exc}") from exc
            self._owns_fh = True
        else:
            self._fh = stream if stream is not None else sys.stderr

    @property
    def verbose(self) -> bool:
        return self._verbose

    def _base_event(self, level: str, event: str) -> Dict[str, Any]:
        return {"ts_ms": self._clock.now_ms(), "level": level, "event": event}

    def warn(self, event: str, fields: Dict[str, Any] | None = None) -> None:
        payload = self._base_event("warn", event)
        if fields:
            payload.update(fields)
        self._write(payload)

    def debug(self, event: str, fields: Dict[str, Any] | None = None) -> None:
        if not self._verbose:
            return
        payload = self._base_event("debug", event)
        if fields:
            payload.update(fields)
        self._write(payload)

    def _write(self, payload: Dict[str, Any]) -> None:
        self._fh.write(json.dumps(payload, ensure_ascii=True) + "\n")
        self._fh.flush()

    def close(self) -> None:
        if self._owns_fh:
            self._fh.close()
