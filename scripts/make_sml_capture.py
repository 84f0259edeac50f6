from __future__ import annotations

import argparse
from pathlib import Path

from smlbridge.protocol.obis import parse_obis
from smlbridge.protocol.sml import CLOSE_RESPONSE, OPEN_RESPONSE
from smlbridge.protocol.sml_builder import (
    encode_get_list_response,
    encode_message,
    integer,
    list_entry,
    octets,
    unsigned,
)
from smlbridge.protocol.transport import wrap_frame

UNIT_WH = 30
UNIT_W = 27


def _open_response(server_id: bytes) -> list:
    return [None, None, octets(b"\x00\x01"), octets(server_id), None, None]


def _frame(index: int, server_id: bytes, energy_wh: int, power_w: int) -> bytes:
    transaction = index.to_bytes(4, "big")
    entries = [
        list_entry(parse_obis("129-129:199.130.3*255"), octets(b"EMH")),
        list_entry(parse_obis("1-0:0.0.9*255"), octets(server_id)),
        list_entry(
            parse_obis("1-0:1.8.0*255"),
            unsigned(energy_wh * 10, 8),
            scaler=-1,
            unit=UNIT_WH,
            status=0x182,
        ),
        list_entry(parse_obis("1-0:16.7.0*255"), integer(power_w, 4), scaler=0, unit=UNIT_W),
    ]
    body = (
        encode_message(OPEN_RESPONSE, _open_response(server_id), transaction_id=transaction + b"\x01")
        + encode_get_list_response(entries, transaction_id=transaction + b"\x02")
        + encode_message(CLOSE_RESPONSE, [None], transaction_id=transaction + b"\x03")
    )
    return wrap_frame(body)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Write a synthetic SML capture for replay through `smlbridge -`."
    )
    parser.add_argument("--out", required=True, help="binary capture path")
    parser.add_argument("--frames", type=int, default=3)
    parser.add_argument("--start-wh", type=int, default=1_234_567)
    parser.add_argument("--power-w", type=int, default=420)
    parser.add_argument("--server-id", default="0a01454d48000012d2c7")
    args = parser.parse_args()

    if args.frames <= 0:
        raise SystemExit("--frames must be > 0")
    server_id = bytes.fromhex(args.server_id)
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("wb") as fh:
        for index in range(args.frames):
            fh.write(_frame(index, server_id, args.start_wh + index, args.power_w))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
