import pytest

from smlbridge.protocol.obis import format_obis, parse_obis


def test_format_obis_renders_unsigned_components() -> None:
    assert format_obis(bytes([1, 0, 1, 8, 0, 255])) == "1-0:1.8.0*255"
    assert format_obis(bytes([129, 129, 199, 130, 3, 255])) == "129-129:199.130.3*255"
    assert format_obis(bytes(6)) == "0-0:0.0.0*0"


def test_format_obis_all_byte_values() -> None:
    for value in range(256):
        code = bytes([value, 0, value, 1, value, 255])
        assert format_obis(code) == f"{value}-0:{value}.1.{value}*255"


def test_format_obis_rejects_wrong_length() -> None:
    with pytest.raises(ValueError, match="must be 6 bytes"):
        format_obis(b"\x01\x00\x01")
    with pytest.raises(ValueError, match="must be 6 bytes"):
        format_obis(bytes(7))


def test_parse_obis_inverts_format() -> None:
    assert parse_obis("1-0:16.7.0*255") == bytes([1, 0, 16, 7, 0, 255])
    assert format_obis(parse_obis("2-0:32.7.0*255")) == "2-0:32.7.0*255"


@pytest.mark.parametrize("text", ["1-0:1.8.0", "1.0.1.8.0.255", "1-0:1.8.x*255", "1-0:1.8.0*256"])
def test_parse_obis_invalid(text: str) -> None:
    with pytest.raises(ValueError):
        parse_obis(text)
