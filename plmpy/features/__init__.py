"""
Feature managers for modem functionality.

Provides high-level managers for different modem capabilities:
- DeviceManager: Direct INSTEON device commands
- LinkManager: Modem link database and linking
- ModemManager: Modem identity, reset and group commands
"""

from .retry import RetryPolicy
from .devices import DeviceManager
from .links import LinkManager
from .modem_info import ModemManager

__all__ = [
    "RetryPolicy",
    "DeviceManager",
    "LinkManager",
    "ModemManager",
]
