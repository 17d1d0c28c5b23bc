"""
plmpy - Python library for controlling INSTEON PowerLinc Modems.
"""

from .version import __version__
from .modem import PowerLincModem

from .types import (
    Address,
    DeviceCommand,
    AllLinkMode,
    MessageFlags,
    AllLinkFlags,
    ModemInfo,
    AllLinkRecord,
    AllLinkComplete,
    Message,
    DeviceStatus,
)

from .exceptions import (
    PLMError,
    EncodingError,
    InvalidAddressFormat,
    UnexpectedResponse,
    CommandError,
    CommandTimeout,
    ModemNak,
    EngineStopped,
    EngineNotStarted,
    TransportError,
    TransportClosed,
)

__all__ = [
    "__version__",
    "PowerLincModem",
    "Address",
    "DeviceCommand",
    "AllLinkMode",
    "MessageFlags",
    "AllLinkFlags",
    "ModemInfo",
    "AllLinkRecord",
    "AllLinkComplete",
    "Message",
    "DeviceStatus",
    "PLMError",
    "EncodingError",
    "InvalidAddressFormat",
    "UnexpectedResponse",
    "CommandError",
    "CommandTimeout",
    "ModemNak",
    "EngineStopped",
    "EngineNotStarted",
    "TransportError",
    "TransportClosed",
]
