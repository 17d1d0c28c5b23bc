"""
Transport layer abstraction for modem communication.

Provides abstractions for serial communication with dependency injection support.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque

import serial
from serial import SerialException

from ..exceptions import TransportError, TransportClosed

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 19200
DEFAULT_POLL_INTERVAL = 0.1

_DISCONNECT_PHRASES = (
    "device disconnected",
    "device reports readiness to read but returned no data",
    "no such device",
    "device not configured",
    "input/output error",
    "connection reset",
    "broken pipe",
    # pyserial socket:// handler
    "socket disconnected",
    "connection closed",
)


class Transport(ABC):
    """
    Abstract base class for modem transport.

    A duplex byte channel. ``read`` polls: it returns whatever arrived
    within the transport's poll interval, possibly nothing. Closure is
    reported by raising TransportClosed.
    """

    @abstractmethod
    def write(self, data: bytes) -> int:
        """
        Write data to the transport.

        Args:
            data: Bytes to write

        Returns:
            Number of bytes written

        Raises:
            TransportClosed: If the channel is closed
            TransportError: If write fails
        """
        pass

    @abstractmethod
    def read(self, size: int = 64) -> bytes:
        """
        Read available bytes.

        Args:
            size: Maximum number of bytes to return

        Returns:
            Bytes read, empty if nothing arrived within the poll interval

        Raises:
            TransportClosed: If the channel is closed
            TransportError: If read fails
        """
        pass

    @abstractmethod
    def is_open(self) -> bool:
        """Check if transport is open."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the transport."""
        pass


class SerialTransport(Transport):
    """
    Serial port transport implementation.

    ``port`` may be a device path or any pyserial URL, e.g.
    ``socket://192.168.1.20:9761`` for a network-attached modem.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = DEFAULT_POLL_INTERVAL
    ) -> None:
        """
        Initialize serial transport.

        Args:
            port: Serial port path (e.g., /dev/ttyUSB0) or pyserial URL
            baudrate: Baud rate for serial communication
            timeout: Read poll interval in seconds

        Raises:
            TransportError: If serial port cannot be opened
        """
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout

        try:
            self._serial = serial.serial_for_url(
                port,
                baudrate=baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout
            )
            logger.info(f"Opened serial port {port} at {baudrate} baud")
        except SerialException as e:
            logger.error(f"Failed to open serial port {port}: {e}")
            raise TransportError(f"Failed to open serial port {port}: {e}") from e

    def _translate(self, e: SerialException, action: str) -> TransportError:
        error_str = str(e).lower()

        # Detect device disconnection
        if any(phrase in error_str for phrase in _DISCONNECT_PHRASES):
            logger.error(f"Device disconnected: {e}")
            return TransportClosed(f"Serial device disconnected: {e}", response=str(e))

        logger.error(f"Serial {action} failed: {e}")
        return TransportError(f"Serial {action} failed: {e}")

    def write(self, data: bytes) -> int:
        """Write data to serial port."""
        if not self.is_open():
            raise TransportClosed(f"Serial port {self.port} is closed")
        try:
            written = self._serial.write(data)
            self._serial.flush()
            logger.debug(f"Wrote {written} bytes: {data.hex(' ')}")
            return written
        except SerialException as e:
            raise self._translate(e, "write") from e

    def read(self, size: int = 64) -> bytes:
        """Read available bytes from serial port."""
        if not self.is_open():
            raise TransportClosed(f"Serial port {self.port} is closed")
        try:
            # Block for at least one byte (up to the timeout), then drain
            data = self._serial.read(1)
            if data:
                waiting = min(self._serial.in_waiting, size - 1)
                if waiting > 0:
                    data += self._serial.read(waiting)
                logger.debug(f"Read {len(data)} bytes: {data.hex(' ')}")
            return data
        except SerialException as e:
            raise self._translate(e, "read") from e

    def is_open(self) -> bool:
        """Check if serial port is open."""
        return bool(self._serial and self._serial.is_open)

    def close(self) -> None:
        """Close the serial port."""
        if self._serial and self._serial.is_open:
            self._serial.close()
            logger.info(f"Closed serial port {self.port}")


class MockTransport(Transport):
    """
    Mock transport for testing.

    Simulates modem traffic without requiring hardware. Responses queued
    with add_response are released one per write, so a reply can never be
    read before the command that caused it.
    """

    def __init__(self, poll_interval: float = 0.01) -> None:
        """Initialize mock transport."""
        self._open = True
        self._poll_interval = poll_interval
        self._input = bytearray()
        self._response_queue: Deque[bytes] = deque()
        self.written: list[bytes] = []
        self._cond = threading.Condition()
        logger.info("Initialized MockTransport")

    def add_response(self, data: bytes) -> None:
        """
        Queue bytes to be delivered after the next write.

        Args:
            data: Wire bytes the modem sends in reply (may be empty to
                simulate a command the modem ignores)
        """
        with self._cond:
            self._response_queue.append(bytes(data))
            logger.debug(f"Added mock response: {bytes(data).hex(' ')}")

    def feed(self, data: bytes) -> None:
        """Make bytes readable immediately (unsolicited traffic)."""
        with self._cond:
            self._input.extend(data)
            self._cond.notify_all()

    def write(self, data: bytes) -> int:
        """Simulate writing data."""
        with self._cond:
            if not self._open:
                raise TransportClosed(
                    "MockTransport is closed (simulating device disconnection)",
                    response="MockTransport closed"
                )

            logger.debug(f"Mock write: {bytes(data).hex(' ')}")
            self.written.append(bytes(data))
            if self._response_queue:
                self._input.extend(self._response_queue.popleft())
                self._cond.notify_all()
            return len(data)

    def read(self, size: int = 64) -> bytes:
        """
        Simulate reading from modem.

        Waits up to the poll interval for input.
        """
        with self._cond:
            if not self._input and self._open:
                self._cond.wait(self._poll_interval)

            if not self._open:
                raise TransportClosed(
                    "MockTransport is closed (simulating device disconnection)",
                    response="MockTransport closed"
                )

            data = bytes(self._input[:size])
            del self._input[:size]
            if data:
                logger.debug(f"Mock read: {data.hex(' ')}")
            return data

    def is_open(self) -> bool:
        """Check if mock transport is open."""
        return self._open

    def close(self) -> None:
        """Close mock transport."""
        with self._cond:
            self._open = False
            self._cond.notify_all()
        logger.info("Closed MockTransport")

    def clear_responses(self) -> None:
        """Clear all queued responses (useful for testing)."""
        with self._cond:
            self._response_queue.clear()
            logger.debug("Cleared mock response queue")
