"""
Data types and structures for plmpy.

Provides type-safe representations of modem and device data.
"""

import re
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import Optional

from .exceptions import InvalidAddressFormat

_ADDRESS_RE = re.compile(r"([0-9A-Fa-f]{2})\.([0-9A-Fa-f]{2})\.([0-9A-Fa-f]{2})")


@dataclass(frozen=True, order=True)
class Address:
    """
    INSTEON device address.

    Three opaque bytes, commonly written as dot-separated hex pairs
    (e.g. "2b.a1.11"). Equality, ordering and hashing are byte-lexicographic.

    Example:

    .. code-block:: python

        address = Address.parse("2B.A1.11")
        print(address)  # 2b.a1.11
    """
    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, (bytes, bytearray)) or len(self.raw) != 3:
            raise InvalidAddressFormat(
                f"Address must be exactly 3 bytes, got {self.raw!r}"
            )
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def parse(cls, text: str) -> "Address":
        """
        Parse an address from its 'HH.HH.HH' text form.

        Args:
            text: Address text, case-insensitive

        Returns:
            Parsed Address

        Raises:
            InvalidAddressFormat: On wrong group count, non-hex digits,
                or groups that are not exactly two digits
        """
        match = _ADDRESS_RE.fullmatch(text.strip()) if isinstance(text, str) else None
        if match is None:
            raise InvalidAddressFormat(
                f"Invalid address {text!r}. Expected 'xx.xx.xx'."
            )
        return cls(bytes(int(group, 16) for group in match.groups()))

    @classmethod
    def from_bytes(cls, data: bytes) -> "Address":
        """Build an address from its 3-byte wire form."""
        return cls(bytes(data))

    def format(self) -> str:
        """Return the canonical lower-case 'hh.hh.hh' form."""
        return ".".join(f"{b:02x}" for b in self.raw)

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"Address('{self.format()}')"

    def __bytes__(self) -> bytes:
        return self.raw


class DeviceCommand(IntEnum):
    """Common INSTEON cmd1 values."""
    CANCEL_LINKING = 0x08
    START_LINKING = 0x09
    VERSION_QUERY = 0x0D
    PING = 0x0F
    ON = 0x11
    ON_FAST = 0x12
    OFF = 0x13
    OFF_FAST = 0x14
    STATUS_REQUEST = 0x19
    BEEP = 0x30


class AllLinkMode(IntEnum):
    """Linking modes for start all-linking (0x64) and all-link complete (0x53)."""
    RESPONDER = 0x00
    CONTROLLER = 0x01
    AUTO = 0x03
    DELETE = 0xFF


class MessageFlags(IntFlag):
    """
    INSTEON message flag bits.

    The low nibble (hop counts) is carried separately on Message.
    """
    NONE = 0
    EXTENDED = 0x10
    ACK = 0x20
    GROUP = 0x40
    BROADCAST_OR_NAK = 0x80


class AllLinkFlags(IntFlag):
    """Link database record flags."""
    NONE = 0
    HAS_BEEN_USED = 0x02
    IS_CONTROLLER = 0x40
    IN_USE = 0x80


@dataclass
class ModemInfo:
    """Modem identity from get modem info (0x60)."""
    address: Address
    category: int
    sub_category: int
    firmware_version: int


@dataclass
class AllLinkRecord:
    """A single record of the modem's link database (0x57)."""
    flags: AllLinkFlags
    group: int
    address: Address
    data: bytes

    @property
    def is_controller(self) -> bool:
        """True if the modem is the controller of this link."""
        return bool(self.flags & AllLinkFlags.IS_CONTROLLER)


@dataclass
class AllLinkComplete:
    """
    Result of a completed link (0x53).

    ``mode`` is None when the modem reported a link code outside AllLinkMode.
    """
    mode: Optional[AllLinkMode]
    group: int
    address: Address
    category: int
    sub_category: int
    firmware_version: int


@dataclass
class Message:
    """
    INSTEON message sent to or received from a device.

    Attributes:
        to: Recipient address
        cmd1: First command byte
        cmd2: Second command byte, often a level or group number
        flags: Message flag bits (see MessageFlags)
        max_hops: Maximum number of hops (0-3, 3 is normally sufficient)
        hops_remaining: Hops left when received
        from_address: Sender address (received messages only)
        data: 14 bytes of user data (extended messages only)
    """
    to: Address
    cmd1: int
    cmd2: int = 0
    flags: MessageFlags = MessageFlags.NONE
    max_hops: int = 3
    hops_remaining: int = 3
    from_address: Optional[Address] = None
    data: bytes = field(default=bytes(14))

    @property
    def is_extended(self) -> bool:
        return bool(self.flags & MessageFlags.EXTENDED)

    @property
    def is_direct_ack(self) -> bool:
        """True for a direct acknowledgement (ACK set, not a group/NAK)."""
        return (
            bool(self.flags & MessageFlags.ACK)
            and not self.flags & (MessageFlags.BROADCAST_OR_NAK | MessageFlags.GROUP)
        )

    @property
    def is_direct_nak(self) -> bool:
        """True for a direct negative acknowledgement."""
        return (
            bool(self.flags & MessageFlags.ACK)
            and bool(self.flags & MessageFlags.BROADCAST_OR_NAK)
            and not self.flags & MessageFlags.GROUP
        )

    def is_reply_to(self, sent: "Message") -> bool:
        """True if this message is an ACK or NAK from the recipient of ``sent``."""
        return self.from_address == sent.to and bool(self.flags & MessageFlags.ACK)


@dataclass
class DeviceStatus:
    """
    Device status from a status request.

    Attributes:
        link_delta: Link database revision counter of the device
        level: On-level, 0-255
    """
    link_delta: int
    level: int

    @property
    def is_on(self) -> bool:
        return self.level > 0

    @property
    def percent(self) -> int:
        """On-level as a percentage."""
        return round(self.level * 100 / 255)
