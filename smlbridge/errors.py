from __future__ import annotations


class SmlBridgeError(Exception):
    pass


class ParseError(SmlBridgeError, ValueError):
    def __init__(self, message: str, offset: int | None = None) -> None:
        if offset is not None:
            message = f"{message} (offset {offset})"
        super().__init__(message)
        self.offset = offset


class MalformedFrameError(ParseError):
    pass


class DeviceOpenError(SmlBridgeError, OSError):
    pass


class DeviceReadError(SmlBridgeError, OSError):
    pass


class ClockReadError(SmlBridgeError, OSError):
    pass


class SinkOpenError(SmlBridgeError, OSError):
    pass


class SinkReopenError(SinkOpenError):
    pass


class LogOpenError(SmlBridgeError, OSError):
    pass


class SingleShotComplete(Exception):
    """Raised once the first record has been written in single-shot mode."""


# Event names for per-entry and per-message faults that are logged, not raised.
MISSING_VALUE_FAULT = "missing_value"
ENTRY_FORMAT_FAULT = "entry_format_failed"
