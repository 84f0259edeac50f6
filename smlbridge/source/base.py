from __future__ import annotations

from abc import ABC, abstractmethod

READ_CHUNK_BYTES = 4096


class IByteSource(ABC):
    @abstractmethod
    def read(self, max_bytes: int = READ_CHUNK_BYTES) -> bytes | None:
        """Returns available bytes, b"" when nothing arrived yet, None at EOF."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self) -> "IByteSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.close()
