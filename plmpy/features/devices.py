"""
INSTEON device manager.

Handles direct messages to devices: on/off/level, ping, beep, status and
version queries.
"""

import logging
from typing import TYPE_CHECKING, Optional

from .retry import RetryPolicy
from ..core import codec
from ..core.codec import Frame
from ..exceptions import EncodingError, ModemNak
from ..parsers.records import MessageParser
from ..types import Address, DeviceCommand, DeviceStatus, Message, MessageFlags

if TYPE_CHECKING:
    from ..core import CorrelationEngine

logger = logging.getLogger(__name__)

DEFAULT_REPLY_TIMEOUT = 10.0


def percent_to_level(percent: int) -> int:
    """
    Map a 0-100 percentage onto the 0-255 on-level range.

    Raises:
        ValueError: If percent is outside 0-100
    """
    if not 0 <= percent <= 100:
        raise ValueError(f"Level must be between 0 and 100, got {percent}")
    return int(percent / 100 * 255)


def build_send_frame(message: Message) -> Frame:
    """
    Build the INSTEON send (0x62) command for a message.

    Hops remaining is set to max hops, as for any freshly sent message.

    Raises:
        EncodingError: If a field does not fit its byte
    """
    hops = message.max_hops & 0x03
    flags = (int(message.flags) & 0xF0) | (hops << 2) | hops
    try:
        payload = bytes([flags, message.cmd1, message.cmd2])
    except ValueError as e:
        raise EncodingError(f"Invalid message field: {e}") from e
    if message.is_extended:
        payload += bytes(message.data)
    return Frame.command(codec.INSTEON_SEND, message.to, payload)


class DeviceManager:
    """
    Sends direct messages to INSTEON devices.

    Every method waits first for the modem to accept the message and then
    for the device's direct acknowledgement.
    """

    def __init__(
        self,
        engine: "CorrelationEngine",
        retry: Optional[RetryPolicy] = None,
        reply_timeout: float = DEFAULT_REPLY_TIMEOUT
    ) -> None:
        """
        Initialize device manager.

        Args:
            engine: CorrelationEngine instance for command execution
            retry: Policy for NAKed sends (no retries if None)
            reply_timeout: Seconds to wait for the device to acknowledge
        """
        self.engine = engine
        self.retry = retry or RetryPolicy()
        self.reply_timeout = reply_timeout

        self._message_parser = MessageParser()

        logger.debug("Initialized DeviceManager")

    def send_message(self, message: Message, timeout: Optional[float] = None) -> Message:
        """
        Send a message and wait for the device's reply.

        Args:
            message: Message to send
            timeout: Seconds to wait for the device (default reply_timeout)

        Returns:
            The device's acknowledgement

        Raises:
            CommandTimeout: If the modem or the device did not answer
            ModemNak: If the modem or the device rejected the message

        Example:

        .. code-block:: python

            reply = modem.devices.send_message(
                Message(to=Address.parse("11.22.33"), cmd1=DeviceCommand.ON, cmd2=0xFF)
            )
        """
        timeout_val = timeout if timeout is not None else self.reply_timeout
        logger.debug(f"Sending message {message}")

        def is_reply(frame: Frame) -> bool:
            if not self._message_parser.accepts(frame):
                return False
            reply = self._message_parser.parse(frame)
            return reply.is_reply_to(message) and (reply.is_direct_ack or reply.is_direct_nak)

        # Subscribe first so the reply cannot slip past
        command = build_send_frame(message)
        with self.engine.listen() as stream:
            self.retry.send(self.engine, command)
            reply = self._message_parser.parse(stream.wait_for(is_reply, timeout_val))

        if reply.is_direct_nak:
            raise ModemNak(
                f"Device {message.to} rejected cmd1=0x{message.cmd1:02x}",
                frame=command,
                response=reply
            )

        logger.debug(f"Received reply {reply}")
        return reply

    def _direct(self, address: Address, cmd1: int, cmd2: int = 0) -> Message:
        return self.send_message(Message(to=address, cmd1=cmd1, cmd2=cmd2))

    def turn_on(self, address: Address, level: int = 100, fast: bool = False) -> Message:
        """
        Turn a device on.

        Args:
            address: Device address
            level: On-level percentage for dimmers (0-100)
            fast: Skip ramping

        Example:

        .. code-block:: python

            modem.devices.turn_on(Address.parse("11.22.33"), level=50)
        """
        logger.info(f"Turning on {address} (level={level}, fast={fast})")
        cmd1 = DeviceCommand.ON_FAST if fast else DeviceCommand.ON
        return self._direct(address, cmd1, percent_to_level(level))

    def turn_off(self, address: Address, fast: bool = False) -> Message:
        """Turn a device off."""
        logger.info(f"Turning off {address} (fast={fast})")
        cmd1 = DeviceCommand.OFF_FAST if fast else DeviceCommand.OFF
        return self._direct(address, cmd1)

    def ping(self, address: Address) -> Message:
        logger.info(f"Pinging {address}")
        return self._direct(address, DeviceCommand.PING)

    def beep(self, address: Address) -> Message:
        logger.info(f"Beeping {address}")
        return self._direct(address, DeviceCommand.BEEP)

    def get_status(self, address: Address) -> DeviceStatus:
        """
        Query a device's on-level.

        Returns:
            DeviceStatus with link database delta and level (0-255)

        Example:

        .. code-block:: python

            status = modem.devices.get_status(Address.parse("11.22.33"))
            print(f"On: {status.is_on} ({status.percent}%)")
        """
        logger.info(f"Getting status of {address}")
        reply = self._direct(address, DeviceCommand.STATUS_REQUEST)
        status = DeviceStatus(link_delta=reply.cmd1, level=reply.cmd2)
        logger.debug(f"Status of {address}: {status}")
        return status

    def get_version(self, address: Address) -> int:
        """Query the INSTEON engine version of a device."""
        logger.info(f"Getting engine version of {address}")
        return self._direct(address, DeviceCommand.VERSION_QUERY).cmd2

    def start_linking(self, address: Address, group: int = 1) -> Message:
        """Ask a device to enter linking mode for a group."""
        logger.info(f"Putting {address} into linking mode (group {group})")
        return self.send_message(Message(
            to=address,
            cmd1=DeviceCommand.START_LINKING,
            cmd2=group,
            flags=MessageFlags.EXTENDED,
        ))

    def cancel_linking(self, address: Address, group: int = 1) -> Message:
        """Ask a device to leave linking mode."""
        logger.info(f"Taking {address} out of linking mode (group {group})")
        return self.send_message(Message(
            to=address,
            cmd1=DeviceCommand.CANCEL_LINKING,
            cmd2=group,
            flags=MessageFlags.EXTENDED,
        ))
