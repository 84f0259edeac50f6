from __future__ import annotations

import argparse
import sys

from smlbridge.config import ServerSpec, load_serverspec
from smlbridge.errors import (
    DeviceOpenError,
    DeviceReadError,
    LogOpenError,
    SingleShotComplete,
    SinkOpenError,
)
from smlbridge.protocol.transport import SmlTransportReader, listen
from smlbridge.runtime.clock import RealClock
from smlbridge.runtime.dispatcher import FrameDispatcher
from smlbridge.runtime.extractor import RecordExtractor
from smlbridge.runtime.formatter import ValueFormatter
from smlbridge.runtime.logging import JsonlLogger
from smlbridge.runtime.sink import RotatingSink
from smlbridge.source.acquisition import open_source


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smlbridge",
        description="Read SML meter data and write OBIS readings as JSON lines.",
    )
    parser.add_argument(
        "device",
        nargs="?",
        help="serial device of the meter, e.g. /dev/ttyUSB0, or - for stdin",
    )
    parser.add_argument(
        "output",
        nargs="?",
        help="output file, cycled to <output>.<timestamp>; - for stdout (default)",
    )
    parser.add_argument(
        "-s",
        "--single",
        dest="single_shot",
        action="store_true",
        default=None,
        help="process only one OBIS data record, then exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="log every decoded SML message",
    )
    parser.add_argument("--config", help="JSON or YAML server config")
    parser.add_argument("--baud", dest="baudrate", type=int)
    parser.add_argument("--rotate-every", type=int, help="records per output file (default 60)")
    parser.add_argument("--read-timeout-s", type=float)
    parser.add_argument("--log-file", help="append diagnostics here instead of stderr")
    return parser


def _resolve_spec(args: argparse.Namespace) -> ServerSpec:
    spec = load_serverspec(args.config) if args.config else ServerSpec()
    spec = spec.with_overrides(
        device=args.device,
        output=args.output,
        single_shot=args.single_shot,
        verbose=args.verbose,
        baudrate=args.baudrate,
        rotate_every=args.rotate_every,
        read_timeout_s=args.read_timeout_s,
        log_file=args.log_file,
    )
    spec.validate()
    return spec


def run(spec: ServerSpec) -> int:
    clock = RealClock()
    logger = JsonlLogger(spec.log_file, verbose=spec.verbose, clock=clock)
    try:
        source = open_source(
            spec.device, baudrate=spec.baudrate, read_timeout_s=spec.read_timeout_s
        )
        try:
            with RotatingSink(
                spec.output, clock=clock, rotate_every=spec.rotate_every, logger=logger
            ) as sink:
                extractor = RecordExtractor(
                    ValueFormatter(), sink, logger, single_shot=spec.single_shot
                )
                dispatcher = FrameDispatcher(extractor, logger)
                reader = SmlTransportReader()
                try:
                    listen(source, dispatcher, reader)
                except SingleShotComplete:
                    return 0
                if reader.dropped_frames:
                    logger.warn("transport_frames_dropped", {"count": reader.dropped_frames})
        finally:
            source.close()
    finally:
        logger.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        spec = _resolve_spec(args)
    except (OSError, ValueError, RuntimeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        print(f"Use {parser.prog} -h for help.", file=sys.stderr)
        return 1
    try:
        return run(spec)
    except (DeviceOpenError, DeviceReadError, LogOpenError, SinkOpenError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
