"""
Core modem infrastructure.

Provides low-level building blocks for modem communication:
- Transport: Serial communication abstraction
- Codec: Frame encoding and decoding
- Events: Unsolicited frame streams
- CorrelationEngine: Request/response correlation over one channel
- CommandSession: One command and its resolution
"""

from .transport import Transport, SerialTransport, MockTransport
from .codec import Frame, FrameKind, FrameBuffer, encode, decode
from .events import EventHub, EventStream
from .session import CommandSession
from .engine import CorrelationEngine, EngineState, PendingRequest

__all__ = [
    "Transport",
    "SerialTransport",
    "MockTransport",
    "Frame",
    "FrameKind",
    "FrameBuffer",
    "encode",
    "decode",
    "EventHub",
    "EventStream",
    "CommandSession",
    "CorrelationEngine",
    "EngineState",
    "PendingRequest",
]
