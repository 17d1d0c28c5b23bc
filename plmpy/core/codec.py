"""
Frame codec for the PowerLinc Modem serial protocol.

Frame layout::

    +-------+------+----------------------+------------+
    | START | Code |         Body         | Terminator |
    | 0x02  | 1 B  | fixed length by code | ACK / NAK  |
    +-------+------+----------------------+------------+

- Commands sent by the host (0x60-0x6A) are echoed back by the modem,
  followed by ACK (0x06) or NAK (0x15).
- Events sent by the modem (0x50-0x58) have no terminator.
- A bare NAK not preceded by START means the modem was busy and dropped
  the last command.
- Extended INSTEON sends carry 14 data bytes; the last one is a checksum
  over cmd1, cmd2 and the first 13 data bytes.

The body length of every code is fixed (0x62 has a standard and an extended
form selected by the message flags), so the table below is the whole framing
rule set.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from ..exceptions import DecodeResync, EncodingError
from ..types import Address

logger = logging.getLogger(__name__)

START = 0x02
ACK = 0x06
NAK = 0x15

# Modem -> host events
STANDARD_MESSAGE_RECEIVED = 0x50
EXTENDED_MESSAGE_RECEIVED = 0x51
X10_RECEIVED = 0x52
ALL_LINK_COMPLETE = 0x53
BUTTON_EVENT = 0x54
USER_RESET = 0x55
ALL_LINK_CLEANUP_FAILURE = 0x56
ALL_LINK_RECORD = 0x57
ALL_LINK_CLEANUP_STATUS = 0x58

# Host -> modem commands
GET_MODEM_INFO = 0x60
ALL_LINK_SEND = 0x61
INSTEON_SEND = 0x62
START_ALL_LINK = 0x64
CANCEL_ALL_LINK = 0x65
RESET_MODEM = 0x67
GET_FIRST_ALL_LINK_RECORD = 0x69
GET_NEXT_ALL_LINK_RECORD = 0x6A

EXTENDED_FLAG = 0x10
EXTENDED_DATA_LEN = 14


class FrameKind(Enum):
    """Frame variants."""
    COMMAND = "command"        # host -> modem
    ACK = "ack"                # modem echo, accepted
    NAK = "nak"                # modem echo or bare NAK, rejected
    EVENT = "event"            # unsolicited modem -> host
    MALFORMED = "malformed"    # recognised code with a bad terminator


@dataclass(frozen=True)
class FrameLayout:
    """
    Wire layout of one command code.

    Attributes:
        code: Command code following START
        name: Human readable name
        reply_len: Body length sent by the modem (echo body or event body)
        send_len: Body length sent by the host, None for events
        address_offset: Body offset of the correlation address, if any
        extended_len: Alternative body length for extended 0x62 messages
    """
    code: int
    name: str
    reply_len: int
    send_len: Optional[int] = None
    address_offset: Optional[int] = None
    extended_len: Optional[int] = None

    @property
    def solicited(self) -> bool:
        """True for host commands, which the modem echoes with ACK/NAK."""
        return self.send_len is not None

    def body_lengths(self, inbound: bool) -> tuple[int, ...]:
        base = self.reply_len if inbound else self.send_len
        if self.extended_len is not None:
            return (base, self.extended_len)
        return (base,)


LAYOUTS: dict[int, FrameLayout] = {
    layout.code: layout for layout in (
        FrameLayout(STANDARD_MESSAGE_RECEIVED, "standard_message_received", 9, address_offset=0),
        FrameLayout(EXTENDED_MESSAGE_RECEIVED, "extended_message_received", 23, address_offset=0),
        FrameLayout(X10_RECEIVED, "x10_received", 2),
        FrameLayout(ALL_LINK_COMPLETE, "all_link_complete", 8, address_offset=2),
        FrameLayout(BUTTON_EVENT, "button_event", 1),
        FrameLayout(USER_RESET, "user_reset", 0),
        FrameLayout(ALL_LINK_CLEANUP_FAILURE, "all_link_cleanup_failure", 5, address_offset=2),
        FrameLayout(ALL_LINK_RECORD, "all_link_record", 8, address_offset=2),
        FrameLayout(ALL_LINK_CLEANUP_STATUS, "all_link_cleanup_status", 1),
        FrameLayout(GET_MODEM_INFO, "get_modem_info", 6, send_len=0),
        FrameLayout(ALL_LINK_SEND, "all_link_send", 3, send_len=3),
        FrameLayout(INSTEON_SEND, "insteon_send", 6, send_len=6, address_offset=0,
                    extended_len=6 + EXTENDED_DATA_LEN),
        FrameLayout(START_ALL_LINK, "start_all_link", 2, send_len=2),
        FrameLayout(CANCEL_ALL_LINK, "cancel_all_link", 0, send_len=0),
        FrameLayout(RESET_MODEM, "reset_modem", 0, send_len=0),
        FrameLayout(GET_FIRST_ALL_LINK_RECORD, "get_first_all_link_record", 0, send_len=0),
        FrameLayout(GET_NEXT_ALL_LINK_RECORD, "get_next_all_link_record", 0, send_len=0),
    )
}


@dataclass(frozen=True)
class Frame:
    """
    One complete protocol message.

    ``payload`` is the frame body with the correlation address removed, so
    ``Frame.command(INSTEON_SEND, address, bytes([flags, cmd1, cmd2]))``
    describes a standard INSTEON send.
    """
    kind: FrameKind
    code: int
    address: Optional[Address] = None
    payload: bytes = b""

    @classmethod
    def command(cls, code: int, address: Optional[Address] = None, payload: bytes = b"") -> "Frame":
        """Build an outgoing command frame."""
        return cls(FrameKind.COMMAND, code, address, bytes(payload))

    @property
    def solicited(self) -> bool:
        """True if the frame answers a host command (echo with ACK/NAK)."""
        return self.kind in (FrameKind.ACK, FrameKind.NAK)

    @property
    def key(self) -> tuple[int, Optional[Address]]:
        """Correlation key: command code and target address."""
        return (self.code, self.address)

    @property
    def name(self) -> str:
        layout = LAYOUTS.get(self.code)
        return layout.name if layout else f"0x{self.code:02x}"

    def __repr__(self) -> str:
        parts = [f"kind={self.kind.value}", f"code=0x{self.code:02x}"]
        if self.address is not None:
            parts.append(f"address={self.address}")
        parts.append(f"payload={self.payload.hex(' ') if self.payload else '(empty)'}")
        return f"Frame({', '.join(parts)})"


def extended_checksum(body: bytes) -> int:
    """
    Checksum for an extended 0x62 body.

    Two's complement of the sum of cmd1, cmd2 and data bytes 1-13.
    """
    return (-sum(body[4:19])) & 0xFF


def _is_extended_send(body: bytes) -> bool:
    return len(body) > 3 and bool(body[3] & EXTENDED_FLAG)


def encode(frame: Frame) -> bytes:
    """
    Encode a frame into wire bytes.

    COMMAND frames produce the bytes the host sends; ACK, NAK and EVENT
    frames produce the bytes the modem sends.

    Args:
        frame: Frame to encode

    Returns:
        Wire bytes, starting with START

    Raises:
        EncodingError: If the code is unknown, the address is missing or
            unexpected, or the payload has the wrong size
    """
    if frame.kind is FrameKind.MALFORMED:
        raise EncodingError("Malformed frames cannot be encoded", frame=frame)

    layout = LAYOUTS.get(frame.code)
    inbound = frame.kind is not FrameKind.COMMAND
    if layout is None:
        raise EncodingError(f"Unknown command code 0x{frame.code:02x}", frame=frame)
    if layout.solicited == (frame.kind is FrameKind.EVENT):
        raise EncodingError(
            f"Code 0x{frame.code:02x} cannot be encoded as {frame.kind.value}",
            frame=frame
        )

    try:
        payload = bytes(frame.payload)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Payload is not a byte sequence: {e}", frame=frame) from e

    if layout.address_offset is None:
        if frame.address is not None:
            raise EncodingError(f"{layout.name} does not take an address", frame=frame)
        body = payload
    else:
        if frame.address is None:
            raise EncodingError(f"{layout.name} requires an address", frame=frame)
        offset = layout.address_offset
        body = payload[:offset] + frame.address.raw + payload[offset:]

    expected = layout.body_lengths(inbound)
    if frame.code == INSTEON_SEND:
        expected = (layout.extended_len,) if _is_extended_send(body) else expected[:1]
    if len(body) not in expected:
        raise EncodingError(
            f"{layout.name} body must be {' or '.join(map(str, expected))} bytes, "
            f"got {len(body)}",
            frame=frame
        )

    if frame.code == INSTEON_SEND and _is_extended_send(body):
        body = body[:-1] + bytes([extended_checksum(body)])

    wire = bytes([START, frame.code]) + body
    if frame.kind is FrameKind.ACK:
        wire += bytes([ACK])
    elif frame.kind is FrameKind.NAK:
        wire += bytes([NAK])
    return wire


def _split_address(layout: FrameLayout, body: bytes) -> tuple[Optional[Address], bytes]:
    if layout.address_offset is None:
        return None, body
    offset = layout.address_offset
    address = Address.from_bytes(body[offset:offset + 3])
    return address, body[:offset] + body[offset + 3:]


def decode(buffer: bytes, inbound: bool = True) -> tuple[Optional[Frame], int]:
    """
    Decode one frame from the head of ``buffer``.

    Args:
        buffer: All currently buffered bytes
        inbound: True to decode modem -> host traffic, False to decode
            host -> modem commands (as a modem emulator sees them)

    Returns:
        (frame, consumed). (None, 0) when more bytes are needed.

    Raises:
        DecodeResync: If the head byte cannot start any recognised frame
    """
    if not buffer:
        return None, 0

    head = buffer[0]
    if head != START:
        if inbound and head == NAK:
            return Frame(FrameKind.NAK, NAK), 1
        raise DecodeResync(f"Unexpected byte 0x{head:02x} at frame start", skip=1)

    if len(buffer) < 2:
        return None, 0

    code = buffer[1]
    layout = LAYOUTS.get(code)
    if layout is None or (not inbound and not layout.solicited):
        raise DecodeResync(f"Unknown command code 0x{code:02x}", skip=1)

    body_len = layout.body_lengths(inbound)[0]
    if layout.extended_len is not None:
        # Flags byte decides between standard and extended length
        if len(buffer) < 2 + 4:
            return None, 0
        if buffer[2 + 3] & EXTENDED_FLAG:
            body_len = layout.extended_len

    end = 2 + body_len
    if len(buffer) < end:
        return None, 0
    address, payload = _split_address(layout, bytes(buffer[2:end]))

    if not inbound:
        return Frame(FrameKind.COMMAND, code, address, payload), end

    if not layout.solicited:
        return Frame(FrameKind.EVENT, code, address, payload), end

    if len(buffer) < end + 1:
        return None, 0
    terminator = buffer[end]
    if terminator == ACK:
        return Frame(FrameKind.ACK, code, address, payload), end + 1
    if terminator == NAK:
        return Frame(FrameKind.NAK, code, address, payload), end + 1

    return Frame(FrameKind.MALFORMED, code, address, payload), end


class FrameBuffer:
    """
    Accumulates received bytes and yields complete frames.

    Bytes that cannot start a frame are discarded one at a time until the
    stream resynchronises.

    Example:

    .. code-block:: python

        buffer = FrameBuffer()
        buffer.feed(transport.read(64))
        for frame in buffer:
            print(frame)
    """

    def __init__(self, inbound: bool = True) -> None:
        self.inbound = inbound
        self._buffer = bytearray()
        self.discarded = 0

    def feed(self, data: bytes) -> None:
        """Append received bytes."""
        self._buffer.extend(data)

    def __len__(self) -> int:
        return len(self._buffer)

    def __iter__(self) -> Iterator[Frame]:
        while self._buffer:
            try:
                frame, consumed = decode(self._buffer, inbound=self.inbound)
            except DecodeResync as e:
                logger.debug(f"Resync: {e}, discarding {e.skip} byte(s)")
                del self._buffer[:e.skip]
                self.discarded += e.skip
                continue

            if frame is None:
                return

            del self._buffer[:consumed]
            yield frame

    def clear(self) -> None:
        """Drop any partially received frame."""
        self._buffer.clear()
