from __future__ import annotations

import sys
from typing import BinaryIO

from smlbridge.errors import DeviceOpenError, DeviceReadError
from smlbridge.source.base import READ_CHUNK_BYTES, IByteSource

STDIN_DEVICE = "-"
DEFAULT_BAUDRATE = 9600


class StdinSource(IByteSource):
    """Replays captured bytes from standard input; no line configuration."""

    def __init__(self, stream: BinaryIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdin.buffer

    def read(self, max_bytes: int = READ_CHUNK_BYTES) -> bytes | None:
        read1 = getattr(self._stream, "read1", None)
        chunk = read1(max_bytes) if read1 is not None else self._stream.read(max_bytes)
        if not chunk:
            return None
        return bytes(chunk)

    def close(self) -> None:
        # stdin belongs to the process.
        return None


class SerialSource(IByteSource):
    """
    Serial meter interface (optical head / IR reader) in raw 8-N-1 mode.

    pyserial opens the device with O_RDWR | O_NOCTTY | O_NONBLOCK and programs
    the termios attributes into raw mode: no input translation or software
    flow control, no output post-processing, no canonical mode, echo or
    signal characters. RTS is asserted after opening because some reading
    heads draw their supply from it.
    """

    def __init__(
        self,
        device: str,
        baudrate: int = DEFAULT_BAUDRATE,
        read_timeout_s: float = 1.0,
    ) -> None:
        try:
            import serial  # type: ignore
        except ImportError as exc:
            raise RuntimeError(
                "pyserial is required for serial devices. Install with `pip install -e .`."
            ) from exc

        if baudrate <= 0:
            raise ValueError("baudrate must be > 0")
        if read_timeout_s <= 0:
            raise ValueError("read_timeout_s must be > 0")

        self._io_errors = (getattr(serial, "SerialException", OSError), OSError)
        try:
            self._serial = serial.Serial(
                port=device,
                baudrate=int(baudrate),
                bytesize=8,
                parity="N",
                stopbits=1,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
                timeout=float(read_timeout_s),
            )
        except self._io_errors as exc:
            raise DeviceOpenError(f"open({device}): {exc}") from exc
        self._serial.rts = True
        self.device = device

    def read(self, max_bytes: int = READ_CHUNK_BYTES) -> bytes | None:
        try:
            waiting = int(self._serial.in_waiting)
        except Exception:
            waiting = 0
        # Block up to the read timeout for the first byte, then drain the rest.
        try:
            return self._serial.read(max(1, min(waiting, max_bytes)))
        except self._io_errors as exc:
            raise DeviceReadError(f"read({self.device}): {exc}") from exc

    def close(self) -> None:
        try:
            self._serial.close()
        except Exception:
            return None


def open_source(
    device: str,
    baudrate: int = DEFAULT_BAUDRATE,
    read_timeout_s: float = 1.0,
) -> IByteSource:
    if device == STDIN_DEVICE:
        return StdinSource()
    return SerialSource(device, baudrate=baudrate, read_timeout_s=read_timeout_s)
