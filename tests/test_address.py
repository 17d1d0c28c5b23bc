"""
Tests for device addresses.
"""

import pytest
from plmpy.types import Address
from plmpy.exceptions import InvalidAddressFormat, PLMError


def test_parse_and_format():
    """Test parsing normalizes to lower case."""
    address = Address.parse("2B.A1.11")

    assert address.raw == bytes([0x2B, 0xA1, 0x11])
    assert address.format() == "2b.a1.11"
    assert str(address) == "2b.a1.11"


def test_parse_strips_whitespace():
    """Test surrounding whitespace is ignored."""
    assert Address.parse("  11.22.33\n") == Address(bytes([0x11, 0x22, 0x33]))


@pytest.mark.parametrize("text", [
    "",
    "11.22",
    "11.22.33.44",
    "1.22.33",
    "111.22.33",
    "gg.22.33",
    "112233",
    "11:22:33",
])
def test_parse_invalid(text):
    """Test malformed addresses are rejected."""
    with pytest.raises(InvalidAddressFormat):
        Address.parse(text)


def test_invalid_address_is_value_error():
    """Test InvalidAddressFormat can be caught as ValueError or PLMError."""
    with pytest.raises(ValueError):
        Address.parse("nope")
    with pytest.raises(PLMError):
        Address.parse("nope")


def test_from_bytes():
    """Test building an address from wire bytes."""
    address = Address.from_bytes(bytearray(b"\x01\x02\x03"))

    assert address == Address.parse("01.02.03")
    assert bytes(address) == b"\x01\x02\x03"


@pytest.mark.parametrize("raw", [b"", b"\x01\x02", b"\x01\x02\x03\x04"])
def test_wrong_length(raw):
    """Test addresses must be exactly three bytes."""
    with pytest.raises(InvalidAddressFormat):
        Address(raw)


def test_ordering_and_hashing():
    """Test addresses order byte-wise and work as dict keys."""
    low = Address.parse("01.ff.ff")
    high = Address.parse("02.00.00")

    assert low < high
    assert sorted([high, low]) == [low, high]
    assert {low: "a"}[Address.parse("01.FF.FF")] == "a"


def test_repr():
    """Test repr shows canonical form."""
    assert repr(Address.parse("AB.CD.EF")) == "Address('ab.cd.ef')"
