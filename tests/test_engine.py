"""
Tests for the correlation engine.
"""

import threading
import time
from concurrent.futures import CancelledError

import pytest
from plmpy.core import CommandSession, CorrelationEngine, EngineState, Frame, FrameKind, MockTransport
from plmpy.core import codec
from plmpy.exceptions import (
    CommandTimeout,
    EncodingError,
    EngineNotStarted,
    EngineStopped,
    ModemNak,
    TransportClosed,
    TransportError,
)
from plmpy.types import Address

DEVICE = Address.parse("11.22.33")

GET_INFO = Frame.command(codec.GET_MODEM_INFO)


def send_to(address, cmd1, cmd2=0):
    return Frame.command(codec.INSTEON_SEND, address, bytes([0x0F, cmd1, cmd2]))


def test_send_resolves_with_ack(engine, mock_transport, modem_info_response):
    """Test a command resolves with its echo."""
    # Setup mock response
    mock_transport.add_response(modem_info_response)

    ack = engine.send(GET_INFO)

    # Verify
    assert ack.kind is FrameKind.ACK
    assert ack.payload == bytes.fromhex("aa bb cc 03 37 9c")
    assert mock_transport.written == [b"\x02\x60"]
    assert engine.pending_count() == 0


def test_concurrent_commands_resolve_independently(engine, mock_transport, make_echo, modem_info_response):
    """Test echoes arriving out of order reach the right callers."""
    device_cmd = send_to(DEVICE, 0x11, 0xFF)

    info_request = engine.submit(GET_INFO)
    device_request = engine.submit(device_cmd)
    assert engine.pending_count() == 2

    # Answer the later command first
    mock_transport.feed(make_echo(device_cmd) + modem_info_response)

    assert device_request.future.result(timeout=1).code == codec.INSTEON_SEND
    assert info_request.future.result(timeout=1).code == codec.GET_MODEM_INFO
    assert engine.pending_count() == 0


def test_concurrent_threads(engine, mock_transport, make_echo):
    """Test commands sent from several threads at once."""
    commands = [send_to(Address(bytes([0x10, 0x00, i])), 0x11) for i in range(5)]
    results = {}

    def worker(command):
        results[command.address] = engine.send(command)

    threads = [threading.Thread(target=worker, args=(c,)) for c in commands]
    for thread in threads:
        thread.start()

    # Wait until every command is registered, then answer in reverse
    deadline = time.monotonic() + 2
    while engine.pending_count() < len(commands) and time.monotonic() < deadline:
        time.sleep(0.01)
    mock_transport.feed(b"".join(make_echo(c) for c in reversed(commands)))

    for thread in threads:
        thread.join(timeout=2)

    assert len(results) == len(commands)
    for command in commands:
        assert results[command.address].address == command.address


def test_same_key_matched_by_echoed_bytes(engine, mock_transport, make_echo):
    """Test two commands to one device are told apart by their echoed bytes."""
    on = send_to(DEVICE, 0x11, 0xFF)
    off = send_to(DEVICE, 0x13, 0x00)

    on_request = engine.submit(on)
    off_request = engine.submit(off)

    mock_transport.feed(make_echo(off))
    assert off_request.future.result(timeout=1).payload == off.payload
    assert not on_request.future.done()

    mock_transport.feed(make_echo(on))
    assert on_request.future.result(timeout=1).payload == on.payload


def test_events_interleaved_with_responses(engine, mock_transport, make_message, modem_info_response):
    """Test an event between command and echo is published, not matched."""
    events = engine.events
    request = engine.submit(GET_INFO)

    mock_transport.feed(make_message(0x11, 0xFF, flags=0xCB) + modem_info_response)

    assert request.future.result(timeout=1).kind is FrameKind.ACK
    event = events.get(timeout=1)
    assert event.kind is FrameKind.EVENT
    assert event.code == codec.STANDARD_MESSAGE_RECEIVED
    assert event.address == DEVICE


def test_events_reach_every_stream(engine, mock_transport):
    """Test additional listeners see the same events."""
    events = engine.events
    extra = engine.listen()

    mock_transport.feed(b"\x02\x54\x02")

    assert events.get(timeout=1).code == codec.BUTTON_EVENT
    assert extra.get(timeout=1).code == codec.BUTTON_EVENT
    extra.close()


def test_unread_events_are_not_kept(engine, mock_transport, modem_info_response):
    """Test events are not buffered until someone reads them."""
    request = engine.submit(GET_INFO)

    mock_transport.feed(b"\x02\x54\x02" * 100 + modem_info_response)

    # The echo is decoded after every event before it
    request.future.result(timeout=1)
    assert engine.hub.subscriber_count() == 0
    assert engine.events.pending() == 0


@pytest.mark.timeout(5)
def test_timeout_removes_request(engine, mock_transport, modem_info_response):
    """Test a command without echo times out and a late echo is dropped."""
    with pytest.raises(CommandTimeout):
        engine.send(GET_INFO, timeout=0.2)

    assert engine.pending_count() == 0

    # Late echo is discarded as stale
    mock_transport.feed(modem_info_response)
    time.sleep(0.1)

    # Engine still works
    mock_transport.add_response(modem_info_response)
    assert engine.send(GET_INFO).kind is FrameKind.ACK


def test_stale_response_without_request(engine, mock_transport):
    """Test an echo nobody waits for is dropped."""
    mock_transport.feed(b"\x02\x65\x06")
    time.sleep(0.1)

    assert engine.is_running() is True
    assert engine.pending_count() == 0


def test_modem_nak(engine, mock_transport, make_echo):
    """Test a NAK echo fails the command."""
    command = send_to(DEVICE, 0x11, 0xFF)
    mock_transport.add_response(make_echo(command, ack=False))

    with pytest.raises(ModemNak) as exc_info:
        engine.send(command)

    assert exc_info.value.busy is False
    assert exc_info.value.response.kind is FrameKind.NAK


def test_modem_busy(engine, mock_transport):
    """Test a bare NAK fails the last command as busy."""
    mock_transport.add_response(b"\x15")

    with pytest.raises(ModemNak) as exc_info:
        engine.send(GET_INFO)

    assert exc_info.value.busy is True
    assert engine.pending_count() == 0


def test_malformed_frame_is_dropped(engine, mock_transport, modem_info_response):
    """Test an echo with a bad terminator does not resolve the command."""
    request = engine.submit(GET_INFO)

    mock_transport.feed(modem_info_response[:-1] + b"\x99")
    time.sleep(0.1)
    assert not request.future.done()

    mock_transport.feed(modem_info_response)
    assert request.future.result(timeout=1).kind is FrameKind.ACK


def test_cancelled_session(engine, mock_transport, modem_info_response):
    """Test cancelling removes the request and ignores its echo."""
    session = CommandSession(engine, GET_INFO).submit()

    assert session.cancel() is True
    assert engine.pending_count() == 0

    mock_transport.feed(modem_info_response)
    time.sleep(0.1)

    with pytest.raises(CancelledError):
        session.wait()
    assert session.done is True


def test_session_submit_twice(engine, mock_transport, modem_info_response):
    """Test a session only submits once."""
    mock_transport.add_response(modem_info_response)
    session = CommandSession(engine, GET_INFO).submit()

    with pytest.raises(RuntimeError):
        session.submit()

    assert session.wait().kind is FrameKind.ACK


def test_session_wait_before_submit(engine):
    """Test waiting on an unsubmitted session fails."""
    with pytest.raises(RuntimeError):
        CommandSession(engine, GET_INFO).wait()


def test_encoding_error_before_write(engine, mock_transport):
    """Test bad commands are rejected without touching the transport."""
    with pytest.raises(EncodingError):
        engine.send(Frame.command(codec.INSTEON_SEND, payload=b"\x0f\x11\x00"))

    with pytest.raises(EncodingError):
        engine.submit(Frame(FrameKind.ACK, codec.GET_MODEM_INFO))

    assert mock_transport.written == []
    assert engine.pending_count() == 0


def test_not_started(mock_transport):
    """Test commands before start fail."""
    core = CorrelationEngine(transport=mock_transport)

    assert core.state is EngineState.NEW
    with pytest.raises(EngineNotStarted):
        core.send(GET_INFO)
    assert mock_transport.written == []

    core.close()


def test_close_fails_pending(mock_transport):
    """Test closing the engine fails outstanding commands."""
    core = CorrelationEngine(transport=mock_transport)
    core.start()
    request = core.submit(GET_INFO)

    core.close()

    with pytest.raises(EngineStopped):
        request.future.result(timeout=1)
    assert core.state is EngineState.STOPPED
    assert core.is_running() is False
    assert core.events.closed is True


class CloseOnWriteTransport(MockTransport):
    """Closes the engine just before the write reaches the wire."""

    engine = None

    def write(self, data):
        self.engine.close()
        return super().write(data)


def test_close_during_write_is_not_a_disconnect():
    """Test a close racing a write fails the command without a disconnect."""
    disconnects = []
    transport = CloseOnWriteTransport()
    core = CorrelationEngine(transport=transport, on_disconnect=disconnects.append)
    transport.engine = core
    core.start()

    request = core.submit(GET_INFO)

    with pytest.raises(EngineStopped):
        request.future.result(timeout=1)
    assert disconnects == []
    assert core.is_disconnected() is False
    assert core.pending_count() == 0


def test_use_after_close(mock_transport):
    """Test a closed engine rejects commands and restarts."""
    core = CorrelationEngine(transport=mock_transport)
    core.start()
    core.close()

    with pytest.raises(EngineStopped):
        core.send(GET_INFO)
    with pytest.raises(EngineStopped):
        core.start()


def test_transport_closure_fails_all_pending(engine, mock_transport):
    """Test losing the transport fails every outstanding command."""
    requests = [engine.submit(send_to(Address(bytes([0x20, 0x00, i])), 0x11)) for i in range(3)]

    mock_transport.close()

    for request in requests:
        with pytest.raises(TransportClosed):
            request.future.result(timeout=2)

    # The event stream is terminated too
    assert engine.events.get(timeout=1) is None
    assert engine.is_disconnected() is True
    assert engine.state is EngineState.STOPPED


def test_context_manager(mock_transport, modem_info_response):
    """Test the engine starts and closes as a context manager."""
    mock_transport.add_response(modem_info_response)

    with CorrelationEngine(transport=mock_transport) as core:
        assert core.is_running() is True
        core.send(GET_INFO)

    assert core.is_running() is False
    assert mock_transport.is_open() is False


def test_reader_survives_transient_errors(modem_info_response):
    """Test transient read errors are retried with backoff."""
    class FlakyTransport(MockTransport):
        def __init__(self):
            super().__init__()
            self.failures = 2

        def read(self, size=64):
            if self.failures > 0:
                self.failures -= 1
                raise TransportError("Simulated read error")
            return super().read(size)

    transport = FlakyTransport()
    transport.add_response(modem_info_response)
    core = CorrelationEngine(transport=transport)
    core.start()

    assert core.send(GET_INFO).kind is FrameKind.ACK
    assert core.is_disconnected() is False

    core.close()
