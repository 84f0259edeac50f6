from smlbridge.source.acquisition import SerialSource, StdinSource, open_source
from smlbridge.source.base import IByteSource

__all__ = ["IByteSource", "SerialSource", "StdinSource", "open_source"]
