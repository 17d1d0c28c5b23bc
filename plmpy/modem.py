"""
Main PowerLincModem class.

User-facing API that coordinates all feature managers.
"""

import logging
from typing import Callable, Iterator, Optional

from .core import CorrelationEngine, EventStream, Frame, SerialTransport, Transport
from .features import DeviceManager, LinkManager, ModemManager, RetryPolicy
from .parsers import MessageParser
from .types import Message

logger = logging.getLogger(__name__)


class PowerLincModem:
    """
    Main interface for INSTEON PowerLinc Modem control.

    Provides a high-level API for modem operations through feature managers:

    - devices: Direct commands to INSTEON devices
    - links: Modem link database and device linking
    - plm: Modem identity, reset and group commands

    Example usage with context manager:

    .. code-block:: python

        with PowerLincModem(port="/dev/ttyUSB0") as modem:
            info = modem.plm.get_info()
            print(f"Modem address: {info.address}")

            modem.devices.turn_on(Address.parse("11.22.33"), level=75)

            for message in modem.messages():
                print(f"{message.from_address}: cmd1=0x{message.cmd1:02x}")

    Example usage with manual lifecycle management:

    .. code-block:: python

        modem = PowerLincModem(port="/dev/ttyUSB0")
        modem.start()
        # ... use modem ...
        modem.close()
    """

    def __init__(
        self,
        port: Optional[str] = None,
        transport: Optional[Transport] = None,
        baudrate: int = 19200,
        command_timeout: float = 5.0,
        log_events: bool = False,
        nak_retries: int = 0,
        retry_delay: float = 0.25,
        auto_start: bool = False,
        on_disconnect: Optional[Callable[[Exception], None]] = None
    ) -> None:
        """
        Initialize PowerLincModem.

        Args:
            port: Serial port path or pyserial URL (e.g., "/dev/ttyUSB0",
                  "socket://hub.local:9761"). Either port or transport required.
            transport: Custom transport instance (for testing). Overrides port if provided.
            baudrate: Serial port baud rate (default: 19200)
            command_timeout: Seconds to wait for a command echo (default: 5.0)
            log_events: Log unsolicited events at INFO level instead of DEBUG (default: False)
            nak_retries: Times to re-send a NAKed command (default: 0)
            retry_delay: Seconds between re-sends (default: 0.25)
            auto_start: Automatically start reader thread (default: False)
            on_disconnect: Optional callback function called when device disconnects.
                          Signature: callback(exception: Exception) -> None

        Raises:
            ValueError: If neither port nor transport is provided
            TransportError: If serial port cannot be opened

        Example:

        .. code-block:: python

            # Retry commands the modem was too busy to accept
            modem = PowerLincModem(port="/dev/ttyUSB0", nak_retries=2)

            # With disconnect callback
            def on_disconnect(error):
                print(f"Modem disconnected: {error}")

            modem = PowerLincModem(
                port="/dev/ttyUSB0",
                on_disconnect=on_disconnect
            )

            # Using custom transport (for testing)
            from plmpy.core import MockTransport
            modem = PowerLincModem(transport=MockTransport())
        """
        if transport is None and port is None:
            raise ValueError("Either 'port' or 'transport' must be provided")

        if transport is None:
            transport = SerialTransport(port=port, baudrate=baudrate)
            logger.info(f"Created serial transport for {port}")

        self._engine = CorrelationEngine(
            transport=transport,
            command_timeout=command_timeout,
            log_events=log_events,
            on_disconnect=on_disconnect
        )

        retry = RetryPolicy(attempts=nak_retries + 1, delay=retry_delay)
        self.devices = DeviceManager(self._engine, retry=retry)
        self.links = LinkManager(self._engine, self.devices, retry=retry)
        self.plm = ModemManager(self._engine, retry=retry)

        self._message_parser = MessageParser()

        logger.info("Initialized PowerLincModem")

        if auto_start:
            self.start()

    def start(self) -> None:
        """
        Start the modem reader thread.

        Must be called before using the modem (unless auto_start=True or using context manager).
        """
        self._engine.start()
        logger.info("Modem started")

    def stop(self) -> None:
        """
        Stop the modem reader thread.

        The engine cannot be restarted afterwards, so this is the same as
        close().
        """
        self.close()

    def close(self) -> None:
        """
        Close the modem connection.

        Stops the reader thread, fails outstanding commands and closes the
        transport.
        """
        self._engine.close()
        logger.info("Modem closed")

    def listen(self) -> EventStream:
        """
        Open a new stream of unsolicited frames.

        Each stream receives every event published after it was opened.

        Example:

        .. code-block:: python

            with modem.listen() as stream:
                frame = stream.get(timeout=5.0)
        """
        return self._engine.listen()

    def messages(self) -> Iterator[Message]:
        """
        Iterate over INSTEON messages received by the modem.

        Reads from the modem's default event stream, skipping events that
        are not INSTEON messages. The stream is subscribed when this is
        called, so only messages received afterwards are seen. Ends when
        the modem is closed.

        Example:

        .. code-block:: python

            for message in modem.messages():
                if message.cmd1 == DeviceCommand.ON:
                    print(f"{message.from_address} turned on")
        """
        return self._parse_messages(self._engine.events)

    def _parse_messages(self, stream: EventStream) -> Iterator[Message]:
        for frame in stream:
            if self._message_parser.accepts(frame):
                yield self._message_parser.parse(frame)

    def send_frame(self, frame: Frame, timeout: Optional[float] = None) -> Frame:
        """
        Send a raw command frame.

        For advanced users who need commands not covered by feature managers.

        Args:
            frame: COMMAND frame (see Frame.command)
            timeout: Echo timeout in seconds (uses default if None)

        Returns:
            The modem's ACK frame

        Raises:
            CommandTimeout: If command times out
            ModemNak: If the modem rejected the command

        Example:

        .. code-block:: python

            ack = modem.send_frame(Frame.command(codec.GET_MODEM_INFO))
            print(ack.payload.hex())
        """
        return self._engine.send(frame, timeout=timeout)

    @property
    def is_running(self) -> bool:
        """
        Check if the modem reader thread is running.

        Returns:
            True if running, False otherwise
        """
        return self._engine.is_running()

    @property
    def is_disconnected(self) -> bool:
        """
        Check if the device was disconnected.

        Returns:
            True if device disconnected, False otherwise
        """
        return self._engine.is_disconnected()

    def __enter__(self):
        """
        Context manager entry.

        Automatically starts the modem if not already running.
        """
        if not self.is_running:
            self.start()
        return self

    def __exit__(self, *exc):
        """
        Context manager exit.

        Automatically closes the modem connection.
        """
        self.close()

    def __repr__(self) -> str:
        """String representation of modem."""
        status = "running" if self.is_running else "stopped"
        return f"<PowerLincModem status={status}>"
