from smlbridge.runtime.clock import FakeClock, RealClock
from smlbridge.runtime.dispatcher import FrameDispatcher
from smlbridge.runtime.extractor import RecordExtractor
from smlbridge.runtime.formatter import ValueFormatter
from smlbridge.runtime.logging import JsonlLogger
from smlbridge.runtime.sink import RotatingSink

__all__ = [
    "FakeClock",
    "RealClock",
    "FrameDispatcher",
    "RecordExtractor",
    "ValueFormatter",
    "JsonlLogger",
    "RotatingSink",
]
