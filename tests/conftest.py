"""
Pytest configuration and fixtures.

Provides shared test fixtures for plmpy tests.
"""

import pytest
import logging

from plmpy.core import MockTransport, CorrelationEngine, Frame, FrameKind, encode
from plmpy.core import codec
from plmpy import PowerLincModem, Address


# Enable logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

MODEM_ADDRESS = Address.parse("aa.bb.cc")
DEVICE_ADDRESS = Address.parse("11.22.33")


@pytest.fixture
def mock_transport():
    """
    Create a MockTransport instance for testing.

    Example:
        def test_something(mock_transport):
            mock_transport.add_response(bytes.fromhex("02 65 06"))
            # ... test code ...
    """
    transport = MockTransport()
    yield transport
    transport.close()


@pytest.fixture
def engine(mock_transport):
    """
    Create a started CorrelationEngine with MockTransport.

    Example:
        def test_command(engine, mock_transport):
            mock_transport.add_response(bytes.fromhex("02 65 06"))
            ack = engine.send(Frame.command(codec.CANCEL_ALL_LINK))
            assert ack.kind is FrameKind.ACK
    """
    core = CorrelationEngine(transport=mock_transport, command_timeout=1.0)
    core.start()
    yield core
    core.close()


@pytest.fixture
def modem(mock_transport):
    """
    Create a PowerLincModem instance with MockTransport.

    Example:
        def test_modem_info(modem, mock_transport, modem_info_response):
            mock_transport.add_response(modem_info_response)
            info = modem.plm.get_info()
            assert info.address == Address.parse("aa.bb.cc")
    """
    modem_instance = PowerLincModem(transport=mock_transport, command_timeout=1.0)
    modem_instance.devices.reply_timeout = 1.0
    modem_instance.start()
    yield modem_instance
    modem_instance.close()


@pytest.fixture
def device_address():
    return DEVICE_ADDRESS


@pytest.fixture
def modem_address():
    return MODEM_ADDRESS


@pytest.fixture
def modem_info_response():
    """Mock echo for get modem info: address aa.bb.cc, category 0x03/0x37, firmware 0x9c."""
    return bytes.fromhex("02 60 aa bb cc 03 37 9c 06")


@pytest.fixture
def make_echo():
    """
    Build the modem's echo of a command.

    Example:
        mock_transport.add_response(make_echo(command))
    """
    def _echo(command: Frame, ack: bool = True) -> bytes:
        kind = FrameKind.ACK if ack else FrameKind.NAK
        return encode(Frame(kind, command.code, command.address, command.payload))
    return _echo


@pytest.fixture
def make_message():
    """
    Build a standard message received event (0x50).

    Defaults to a direct ACK from the test device to the modem.
    """
    def _message(
        cmd1: int,
        cmd2: int = 0,
        sender: Address = DEVICE_ADDRESS,
        flags: int = 0x2B,
        to: Address = MODEM_ADDRESS
    ) -> bytes:
        return encode(Frame(
            FrameKind.EVENT,
            codec.STANDARD_MESSAGE_RECEIVED,
            sender,
            to.raw + bytes([flags, cmd1, cmd2])
        ))
    return _message
