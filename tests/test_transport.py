"""
Tests for transport layer.
"""

import pytest
from serial import SerialException
from plmpy.core import MockTransport, SerialTransport
from plmpy.exceptions import TransportClosed, TransportError


def test_mock_transport_write():
    """Test MockTransport write operation."""
    transport = MockTransport()

    written = transport.write(b"\x02\x60")
    assert written == 2
    assert transport.written == [b"\x02\x60"]

    transport.close()


def test_mock_transport_response_released_on_write():
    """Test queued responses only become readable after a write."""
    transport = MockTransport()
    transport.add_response(b"\x02\x65\x06")

    # Nothing to read before the command is written
    assert transport.read() == b""

    transport.write(b"\x02\x65")
    assert transport.read() == b"\x02\x65\x06"

    transport.close()


def test_mock_transport_responses_in_order():
    """Test one response is released per write."""
    transport = MockTransport()
    transport.add_response(b"\x01")
    transport.add_response(b"\x02")

    transport.write(b"a")
    assert transport.read() == b"\x01"

    transport.write(b"b")
    assert transport.read() == b"\x02"

    transport.close()


def test_mock_transport_feed():
    """Test fed bytes are readable immediately."""
    transport = MockTransport()

    transport.feed(b"\x02\x54\x02")
    assert transport.read(2) == b"\x02\x54"
    assert transport.read() == b"\x02"

    transport.close()


def test_mock_transport_clear_responses():
    """Test clearing queued responses."""
    transport = MockTransport()
    transport.add_response(b"\x02\x65\x06")
    transport.clear_responses()

    transport.write(b"\x02\x65")
    assert transport.read() == b""

    transport.close()


def test_mock_transport_closed():
    """Test closed MockTransport raises TransportClosed."""
    transport = MockTransport()
    transport.close()

    assert transport.is_open() is False
    with pytest.raises(TransportClosed):
        transport.write(b"\x02\x60")
    with pytest.raises(TransportClosed):
        transport.read()


def test_serial_transport_loopback():
    """Test SerialTransport over a pyserial loopback URL."""
    transport = SerialTransport("loop://", timeout=0.1)

    assert transport.is_open() is True
    assert transport.write(b"\x02\x60") == 2
    assert transport.read() == b"\x02\x60"
    assert transport.read() == b""

    transport.close()
    assert transport.is_open() is False


def test_serial_transport_closed():
    """Test SerialTransport raises TransportClosed after close."""
    transport = SerialTransport("loop://")
    transport.close()

    with pytest.raises(TransportClosed):
        transport.read()
    with pytest.raises(TransportClosed):
        transport.write(b"\x02\x60")


def test_serial_transport_open_failure():
    """Test a missing port raises TransportError."""
    with pytest.raises(TransportError):
        SerialTransport("/dev/does-not-exist-plm")


@pytest.mark.parametrize("message", [
    "socket disconnected",
    "Connection closed by peer",
    "device reports readiness to read but returned no data "
    "(device disconnected or multiple access on port?)",
])
def test_serial_transport_disconnect_errors(message):
    """Test peer and device loss are reported as TransportClosed."""
    transport = SerialTransport("loop://")

    error = transport._translate(SerialException(message), "read")

    assert isinstance(error, TransportClosed)
    transport.close()


def test_serial_transport_other_errors():
    """Test other serial failures stay plain TransportErrors."""
    transport = SerialTransport("loop://")

    error = transport._translate(SerialException("write timeout"), "write")

    assert type(error) is TransportError
    transport.close()
