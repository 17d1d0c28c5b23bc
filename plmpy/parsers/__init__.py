"""
Frame parsers.

Provides type-safe parsing of decoded frames into structured data.
"""

from .base import FrameParser
from .records import (
    ModemInfoParser,
    AllLinkRecordParser,
    AllLinkCompleteParser,
    MessageParser,
)

__all__ = [
    "FrameParser",
    "ModemInfoParser",
    "AllLinkRecordParser",
    "AllLinkCompleteParser",
    "MessageParser",
]
