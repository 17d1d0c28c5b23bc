"""
Modem manager.

Handles operations on the PowerLinc Modem itself: identity, reset and
group (all-link) commands.
"""

import logging
from typing import TYPE_CHECKING, Optional

from .retry import RetryPolicy
from ..core import codec
from ..core.codec import Frame
from ..exceptions import EncodingError
from ..parsers.records import ModemInfoParser
from ..types import ModemInfo

if TYPE_CHECKING:
    from ..core import CorrelationEngine

logger = logging.getLogger(__name__)


class ModemManager:
    """
    Manages the attached modem.

    Provides methods for querying modem identity and sending group commands.
    """

    def __init__(self, engine: "CorrelationEngine", retry: Optional[RetryPolicy] = None) -> None:
        """
        Initialize modem manager.

        Args:
            engine: CorrelationEngine instance for command execution
            retry: Policy for NAKed commands (no retries if None)
        """
        self.engine = engine
        self.retry = retry or RetryPolicy()

        self._info_parser = ModemInfoParser()

        logger.debug("Initialized ModemManager")

    def get_info(self) -> ModemInfo:
        """
        Get modem identity.

        Returns:
            ModemInfo with address, category, sub-category and firmware

        Example:

        .. code-block:: python

            info = modem.plm.get_info()
            print(f"Modem {info.address} firmware {info.firmware_version}")
        """
        logger.info("Getting modem info")
        ack = self.retry.send(self.engine, Frame.command(codec.GET_MODEM_INFO))
        info = self._info_parser.parse(ack)
        logger.debug(f"Modem info: {info}")
        return info

    def reset(self, timeout: Optional[float] = None) -> None:
        """
        Reset the modem to factory defaults.

        **WARNING**: This erases the modem's link database.
        """
        logger.warning("Resetting modem to factory defaults")
        self.retry.send(self.engine, Frame.command(codec.RESET_MODEM), timeout=timeout)

    def send_group_command(self, group: int, cmd1: int, cmd2: int = 0) -> Frame:
        """
        Send a command to every device linked to a modem group.

        Args:
            group: Group number (0-255)
            cmd1: First command byte (e.g. DeviceCommand.ON)
            cmd2: Second command byte

        Returns:
            The modem's ACK frame

        Example:

        .. code-block:: python

            modem.plm.send_group_command(1, DeviceCommand.OFF)
        """
        logger.info(f"Sending group {group} cmd1=0x{int(cmd1):02x} cmd2=0x{int(cmd2):02x}")
        try:
            payload = bytes([group, cmd1, cmd2])
        except ValueError as e:
            raise EncodingError(f"Invalid group command field: {e}") from e
        return self.retry.send(self.engine, Frame.command(codec.ALL_LINK_SEND, payload=payload))
