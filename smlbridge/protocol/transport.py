from __future__ import annotations

from typing import Callable

from smlbridge.source.base import IByteSource

ESCAPE = b"\x1b\x1b\x1b\x1b"
START = ESCAPE + b"\x01\x01\x01\x01"
END_MARKER = 0x1A
BLOCK = 4
ENVELOPE_BYTES = 8
MAX_FRAME_BYTES = 8096


class SmlTransportReader:
    """
    Extracts SML transport v1 frames from a byte stream.

    Wire format (4-byte blocks after the start sequence):
      1b1b1b1b 01010101 | BODY | 1b1b1b1b 1a PP C1 C2

    A `1b1b1b1b 1b1b1b1b` pair inside the body is an escaped literal and is
    kept once. Emitted frames keep both 8-byte envelopes and have escapes
    resolved. Checksums are not verified.
    """

    def __init__(self, *, max_frame_bytes: int = MAX_FRAME_BYTES) -> None:
        if max_frame_bytes <= 2 * ENVELOPE_BYTES:
            raise ValueError("max_frame_bytes must be > 16")
        self._max_frame_bytes = int(max_frame_bytes)
        self._buf = bytearray()
        self.dropped_frames = 0

    def feed(self, data: bytes) -> None:
        if data:
            self._buf.extend(data)

    def _resync(self) -> None:
        # Drop the current start sequence and look for the next one.
        del self._buf[:1]
        self.dropped_frames += 1

    def pop(self) -> bytes | None:
        while True:
            start = self._buf.find(START)
            if start < 0:
                # Keep a possible partial start sequence at the tail.
                if len(self._buf) > len(START) - 1:
                    del self._buf[: len(self._buf) - (len(START) - 1)]
                return None
            if start:
                del self._buf[:start]
            body = bytearray()
            pos = len(START)
            while True:
                if len(START) + len(body) + ENVELOPE_BYTES > self._max_frame_bytes:
                    self._resync()
                    break
                block = bytes(self._buf[pos : pos + BLOCK])
                if len(block) < BLOCK:
                    return None
                if block != ESCAPE:
                    body.extend(block)
                    pos += BLOCK
                    continue
                tail = bytes(self._buf[pos + BLOCK : pos + 2 * BLOCK])
                if len(tail) < BLOCK:
                    return None
                if tail == ESCAPE:
                    body.extend(ESCAPE)
                    pos += 2 * BLOCK
                    continue
                if tail[0] == END_MARKER:
                    frame = START + bytes(body) + ESCAPE + tail
                    del self._buf[: pos + 2 * BLOCK]
                    return frame
                if tail == START[BLOCK:]:
                    # A new start sequence aborts the partial frame.
                    del self._buf[:pos]
                    self.dropped_frames += 1
                    break
                self._resync()
                break

    def buffered_bytes(self) -> int:
        return len(self._buf)


def wrap_frame(body: bytes, crc: int = 0) -> bytes:
    """Builds one transport frame around an encoded SML body (inverse of the reader)."""
    padding = (-len(body)) % BLOCK
    padded = bytes(body) + b"\x00" * padding
    escaped = bytearray()
    for index in range(0, len(padded), BLOCK):
        block = padded[index : index + BLOCK]
        escaped.extend(block)
        if block == ESCAPE:
            escaped.extend(ESCAPE)
    return START + bytes(escaped) + ESCAPE + bytes([END_MARKER, padding]) + crc.to_bytes(2, "big")


def listen(
    source: IByteSource,
    callback: Callable[[bytes], None],
    reader: SmlTransportReader | None = None,
) -> int:
    """Reads until the source reports EOF, calling `callback` once per frame."""
    reader = reader or SmlTransportReader()
    frames = 0
    while True:
        chunk = source.read()
        if chunk is None:
            return frames
        if not chunk:
            continue
        reader.feed(chunk)
        while True:
            frame = reader.pop()
            if frame is None:
                break
            frames += 1
            callback(frame)
