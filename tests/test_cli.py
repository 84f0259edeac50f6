import io
import json
import runpy
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from smlbridge.cli import main
from smlbridge.protocol.sml import OPEN_RESPONSE
from smlbridge.protocol.sml_builder import (
    boolean,
    encode_get_list_response,
    encode_message,
    list_entry,
    octets,
    unsigned,
)
from smlbridge.protocol.transport import wrap_frame

OBIS_1_8_0 = bytes([1, 0, 1, 8, 0, 255])
OBIS_96_5_0 = bytes([1, 0, 96, 5, 0, 255])


def _frame(raw: int) -> bytes:
    open_body = [None, None, octets(b"\x00\x01"), octets(b"\x0a\x01"), None, None]
    body = encode_message(OPEN_RESPONSE, open_body) + encode_get_list_response(
        [
            list_entry(OBIS_1_8_0, unsigned(raw), scaler=-2, unit=30),
            list_entry(OBIS_96_5_0, boolean(True), scaler=-2),
        ]
    )
    return wrap_frame(body)


def _capture(frames: int) -> bytes:
    return b"".join(_frame(1234 + index) for index in range(frames))


def _stdin(monkeypatch: pytest.MonkeyPatch, data: bytes) -> None:
    monkeypatch.setattr(sys, "stdin", SimpleNamespace(buffer=io.BytesIO(data)))


def test_cli_replay_to_stdout(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    _stdin(monkeypatch, _capture(3))
    assert main(["-"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 3
    first = json.loads(lines[0])
    assert list(first) == ["ts", "1-0:1.8.0*255", "1-0:96.5.0*255"]
    assert first["1-0:1.8.0*255"] == pytest.approx(12.34)
    assert first["1-0:96.5.0*255"] == "true"
    assert lines[0].endswith('"1-0:1.8.0*255": 12.34, "1-0:96.5.0*255": "true" }')


def test_cli_single_shot_exits_after_first_record(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    _stdin(monkeypatch, _capture(5))
    assert main(["-s", "-", "-"]) == 0
    assert len(capsys.readouterr().out.splitlines()) == 1


class _TickingClock:
    """Advances one second per wall-clock read so rotated names never collide."""

    def __init__(self) -> None:
        self._ns = 1_700_000_000 * 1_000_000_000

    def now_ns(self) -> int:
        self._ns += 1_000_000_000
        return self._ns

    def now_ms(self) -> int:
        return self._ns // 1_000_000


def test_cli_rotates_output_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import smlbridge.cli as cli_mod

    monkeypatch.setattr(cli_mod, "RealClock", _TickingClock)
    out = tmp_path / "meter.jsonl"
    _stdin(monkeypatch, _capture(5))
    assert main(["--rotate-every", "2", "-", str(out)]) == 0
    rotated = sorted(tmp_path.glob("meter.jsonl.*"))
    assert len(rotated) == 2
    for path in rotated:
        assert path.suffix[1:].isdigit()
        assert len(path.read_text(encoding="utf-8").splitlines()) == 2
    assert len(out.read_text(encoding="utf-8").splitlines()) == 1


def test_cli_reads_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    out = tmp_path / "meter.jsonl"
    log = tmp_path / "diag.jsonl"
    config = tmp_path / "server.json"
    config.write_text(
        json.dumps({"device": "-", "output": str(out), "verbose": True, "log_file": str(log)}),
        encoding="utf-8",
    )
    _stdin(monkeypatch, _capture(1) + b"\x1b\x1b\x1b\x1b\x01\x01\x01\x01\x76\xff\xff\xff\x1b\x1b\x1b\x1b\x1a\x00\x00\x00")
    assert main(["--config", str(config)]) == 0
    assert len(out.read_text(encoding="utf-8").splitlines()) == 1
    events = [json.loads(line)["event"] for line in log.read_text(encoding="utf-8").splitlines()]
    assert "sml_message" in events
    assert "frame_parse_failed" in events


def test_cli_missing_device_reports_error(capsys: pytest.CaptureFixture) -> None:
    assert main([]) == 1
    err = capsys.readouterr().err
    assert "error: device is required" in err
    assert "smlbridge -h" in err


def test_cli_too_many_arguments_exits_nonzero() -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["-", "-", "extra"])
    assert excinfo.value.code != 0


def test_cli_device_open_error(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    class _SerialException(OSError):
        pass

    def failing_serial(**kwargs):  # type: ignore[no-untyped-def]
        raise _SerialException("[Errno 2] could not open port")

    monkeypatch.setitem(
        sys.modules, "serial", SimpleNamespace(Serial=failing_serial, SerialException=_SerialException)
    )
    assert main(["/dev/ttyUSB9"]) == 1
    assert "error: open(/dev/ttyUSB9)" in capsys.readouterr().err


def test_cli_unwritable_output(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    _stdin(monkeypatch, b"")
    assert main(["-", str(tmp_path)]) == 1
    assert "error: cannot open output" in capsys.readouterr().err


def test_module_entrypoint(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    _stdin(monkeypatch, _capture(1))
    monkeypatch.setattr(sys, "argv", ["smlbridge", "-"])
    with pytest.raises(SystemExit) as excinfo:
        runpy.run_module("smlbridge", run_name="__main__")
    assert excinfo.value.code == 0
    assert len(capsys.readouterr().out.splitlines()) == 1


def test_cli_unwritable_log_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("", encoding="utf-8")
    _stdin(monkeypatch, _capture(1))
    assert main(["--log-file", str(blocker / "diag.jsonl"), "-"]) == 1
    captured = capsys.readouterr()
    assert "error: cannot open log file" in captured.err
    assert captured.out == ""


def test_cli_log_file_failure_opens_no_device(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    opened: list[dict] = []

    def recording_serial(**kwargs):  # type: ignore[no-untyped-def]
        opened.append(kwargs)
        raise AssertionError("device must not be opened")

    monkeypatch.setitem(sys.modules, "serial", SimpleNamespace(Serial=recording_serial, SerialException=OSError))
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("", encoding="utf-8")
    assert main(["--log-file", str(blocker / "diag.jsonl"), "/dev/ttyUSB0"]) == 1
    assert opened == []
    assert "error: cannot open log file" in capsys.readouterr().err


def test_cli_device_read_error_mid_stream(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    class _SerialException(OSError):
        pass

    class _UnpluggedSerial:
        instances: list["_UnpluggedSerial"] = []

        def __init__(self, **kwargs) -> None:  # type: ignore[no-untyped-def]
            self.rts = False
            self.in_waiting = 0
            self.closed = False
            self._chunks = [_frame(1234)]
            _UnpluggedSerial.instances.append(self)

        def read(self, n: int) -> bytes:
            if self._chunks:
                return self._chunks.pop(0)
            raise _SerialException("device reports readiness to read but returned no data")

        def close(self) -> None:
            self.closed = True

    monkeypatch.setitem(
        sys.modules, "serial", SimpleNamespace(Serial=_UnpluggedSerial, SerialException=_SerialException)
    )
    assert main(["/dev/ttyUSB0"]) == 1
    captured = capsys.readouterr()
    assert len(captured.out.splitlines()) == 1
    assert "error: read(/dev/ttyUSB0): device reports readiness" in captured.err
    assert _UnpluggedSerial.instances[0].closed


def test_cli_rejects_zero_read_timeout(capsys: pytest.CaptureFixture) -> None:
    assert main(["--read-timeout-s", "0", "/dev/ttyUSB0"]) == 1
    assert "error: read_timeout_s must be > 0" in capsys.readouterr().err
