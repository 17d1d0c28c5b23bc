"""
Parsers for modem and device frames.
"""

import logging

from .base import FrameParser
from ..core import codec
from ..core.codec import Frame, FrameKind
from ..types import (
    Address,
    AllLinkComplete,
    AllLinkFlags,
    AllLinkMode,
    AllLinkRecord,
    Message,
    MessageFlags,
    ModemInfo,
)

logger = logging.getLogger(__name__)


class ModemInfoParser(FrameParser[ModemInfo]):
    """
    Parser for the get modem info (0x60) echo.

    Payload: address(3) category sub_category firmware
    """
    kinds = (FrameKind.ACK,)
    codes = (codec.GET_MODEM_INFO,)

    def parse(self, frame: Frame) -> ModemInfo:
        payload = self.check(frame).payload
        return ModemInfo(
            address=Address.from_bytes(payload[0:3]),
            category=payload[3],
            sub_category=payload[4],
            firmware_version=payload[5],
        )


class AllLinkRecordParser(FrameParser[AllLinkRecord]):
    """
    Parser for all-link record events (0x57).

    Payload (address removed): flags group data(3)
    """
    kinds = (FrameKind.EVENT,)
    codes = (codec.ALL_LINK_RECORD,)

    def parse(self, frame: Frame) -> AllLinkRecord:
        payload = self.check(frame).payload
        return AllLinkRecord(
            flags=AllLinkFlags(payload[0] & 0xFF),
            group=payload[1],
            address=frame.address,
            data=bytes(payload[2:5]),
        )


class AllLinkCompleteParser(FrameParser[AllLinkComplete]):
    """
    Parser for all-link complete events (0x53).

    Payload (address removed): link_code group category sub_category firmware
    """
    kinds = (FrameKind.EVENT,)
    codes = (codec.ALL_LINK_COMPLETE,)

    def parse(self, frame: Frame) -> AllLinkComplete:
        payload = self.check(frame).payload
        try:
            mode = AllLinkMode(payload[0])
        except ValueError:
            logger.warning(f"Unknown link code 0x{payload[0]:02x}")
            mode = None

        return AllLinkComplete(
            mode=mode,
            group=payload[1],
            address=frame.address,
            category=payload[2],
            sub_category=payload[3],
            firmware_version=payload[4],
        )


class MessageParser(FrameParser[Message]):
    """
    Parser for received INSTEON messages (0x50 standard, 0x51 extended).

    Payload (sender removed): to(3) flags cmd1 cmd2 [data(14)]
    """
    kinds = (FrameKind.EVENT,)
    codes = (codec.STANDARD_MESSAGE_RECEIVED, codec.EXTENDED_MESSAGE_RECEIVED)

    def parse(self, frame: Frame) -> Message:
        payload = self.check(frame).payload
        flags = payload[3]
        data = bytes(payload[6:20]) if frame.code == codec.EXTENDED_MESSAGE_RECEIVED else bytes(14)
        return Message(
            to=Address.from_bytes(payload[0:3]),
            cmd1=payload[4],
            cmd2=payload[5],
            flags=MessageFlags(flags & 0xF0),
            max_hops=flags & 0x03,
            hops_remaining=(flags & 0x0C) >> 2,
            from_address=frame.address,
            data=data,
        )
