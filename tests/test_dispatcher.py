import io
import json

import pytest

from smlbridge.errors import ParseError, SingleShotComplete
from smlbridge.protocol.sml import SmlFile
from smlbridge.protocol.sml_builder import encode_get_list_response, list_entry, unsigned
from smlbridge.protocol.transport import wrap_frame
from smlbridge.runtime.clock import FakeClock
from smlbridge.runtime.dispatcher import FrameDispatcher, describe_message
from smlbridge.runtime.extractor import RecordExtractor
from smlbridge.runtime.formatter import ValueFormatter
from smlbridge.runtime.sink import RotatingSink

OBIS_1_8_0 = bytes([1, 0, 1, 8, 0, 255])


class _MemLogger:
    def __init__(self, verbose: bool = False) -> None:
        self.events: list[tuple[str, dict[str, object]]] = []
        self.verbose = verbose

    def warn(self, event: str, fields: dict[str, object] | None = None) -> None:
        self.events.append((event, dict(fields or {})))

    def debug(self, event: str, fields: dict[str, object] | None = None) -> None:
        if self.verbose:
            self.events.append((event, dict(fields or {})))


class _RecordingParser:
    def __init__(self, fail: bool = False) -> None:
        self.calls: list[bytes] = []
        self._fail = fail

    def __call__(self, data: bytes) -> SmlFile:
        self.calls.append(data)
        if self._fail:
            raise ParseError("bad TL byte", 3)
        return SmlFile([])


def _dispatcher(parse=None, *, verbose: bool = False, single_shot: bool = False):  # type: ignore[no-untyped-def]
    stream = io.StringIO()
    logger = _MemLogger(verbose=verbose)
    sink = RotatingSink("-", clock=FakeClock(), stream=stream)
    extractor = RecordExtractor(ValueFormatter(), sink, logger, single_shot=single_shot)  # type: ignore[arg-type]
    kwargs = {"parse": parse} if parse is not None else {}
    return FrameDispatcher(extractor, logger, **kwargs), stream, logger  # type: ignore[arg-type]


def _frame(raw: int) -> bytes:
    return wrap_frame(encode_get_list_response([list_entry(OBIS_1_8_0, unsigned(raw), scaler=-2)]))


def test_short_frame_rejected_without_parsing() -> None:
    parser = _RecordingParser()
    dispatcher, stream, logger = _dispatcher(parser)
    dispatcher(b"\x1b" * 15)
    assert parser.calls == []
    assert stream.getvalue() == ""
    assert dispatcher.frames_rejected == 1
    event, fields = logger.events[0]
    assert event == "frame_rejected"
    assert fields["frame_index"] == 0
    assert fields["frame_bytes"] == 15


def test_dispatch_raises_malformed_frame() -> None:
    from smlbridge.errors import MalformedFrameError

    dispatcher, _, _ = _dispatcher(_RecordingParser())
    with pytest.raises(MalformedFrameError, match="at least 16"):
        dispatcher.dispatch(b"")


def test_envelope_is_stripped_before_parse() -> None:
    parser = _RecordingParser()
    dispatcher, _, _ = _dispatcher(parser)
    dispatcher(b"S" * 8 + b"body" + b"E" * 8)
    dispatcher(b"x" * 16)
    assert parser.calls == [b"body", b""]


def test_parse_failure_is_logged_and_listening_continues() -> None:
    failing, stream, logger = _dispatcher(_RecordingParser(fail=True))
    failing(b"\x00" * 24)
    assert logger.events[0][0] == "frame_parse_failed"
    assert "offset 3" in str(logger.events[0][1]["reason"])

    dispatcher, stream, logger = _dispatcher()
    dispatcher(b"\x1b\x1b\x1b\x1b\x01\x01\x01\x01\x76\xff\xff\xff\x1b\x1b\x1b\x1b\x1a\x00\x00\x00")
    dispatcher(_frame(1234))
    assert [event for event, _ in logger.events] == ["frame_parse_failed"]
    assert json.loads(stream.getvalue())["1-0:1.8.0*255"] == pytest.approx(12.34)
    assert dispatcher.frames_seen == 2


def test_single_shot_propagates() -> None:
    dispatcher, stream, _ = _dispatcher(single_shot=True)
    with pytest.raises(SingleShotComplete):
        dispatcher(_frame(1))
    assert len(stream.getvalue().splitlines()) == 1


def test_verbose_logs_decoded_messages() -> None:
    dispatcher, _, logger = _dispatcher(verbose=True)
    dispatcher(wrap_frame(encode_get_list_response([list_entry(OBIS_1_8_0, unsigned(5), unit=30)])))
    event, fields = logger.events[0]
    assert event == "sml_message"
    assert fields["tag_name"] == "get_list_response"
    assert fields["entries"] == [{"obis": "1-0:1.8.0*255", "kind": "unsigned", "scaler": None, "unit": "Wh"}]


def test_describe_message_handles_short_object_code() -> None:
    from smlbridge.protocol.sml import parse_sml_file

    tree = parse_sml_file(encode_get_list_response([list_entry(b"\x01\x02", unsigned(5))]))
    summary = describe_message(0, tree.messages[0])
    assert summary["entries"][0]["obis"] == "0102"


class _FailingDebugLogger(_MemLogger):
    def debug(self, event: str, fields: dict[str, object] | None = None) -> None:
        raise OSError("diagnostic stream closed")


def test_tree_released_when_verbose_dump_fails() -> None:
    trees: list[SmlFile] = []

    def parse(data: bytes) -> SmlFile:
        from smlbridge.protocol.sml import parse_sml_file

        trees.append(parse_sml_file(data))
        return trees[-1]

    logger = _FailingDebugLogger(verbose=True)
    sink = RotatingSink("-", clock=FakeClock(), stream=io.StringIO())
    extractor = RecordExtractor(ValueFormatter(), sink, logger)  # type: ignore[arg-type]
    dispatcher = FrameDispatcher(extractor, logger, parse=parse)  # type: ignore[arg-type]
    with pytest.raises(OSError, match="diagnostic stream closed"):
        dispatcher(_frame(7))
    assert trees[0].released


def test_tree_released_once_after_processing() -> None:
    trees: list[SmlFile] = []

    def parse(data: bytes) -> SmlFile:
        from smlbridge.protocol.sml import parse_sml_file

        trees.append(parse_sml_file(data))
        return trees[-1]

    dispatcher, stream, logger = _dispatcher(parse)
    dispatcher(_frame(1234))
    assert trees[0].released
    assert logger.events == []
    assert len(stream.getvalue().splitlines()) == 1
