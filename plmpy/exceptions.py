"""
Exceptions for plmpy library.

Provides detailed error information for debugging modem communication issues.
"""

from typing import Optional, Any


class PLMError(Exception):
    """
    Base exception for PowerLinc Modem errors.

    All plmpy exceptions inherit from this class.
    """

    def __init__(
        self,
        message: str,
        frame: Optional[Any] = None,
        response: Optional[Any] = None
    ) -> None:
        """
        Initialize exception with context.

        Args:
            message: Error description
            frame: Frame that caused the error (if applicable)
            response: Modem response (if applicable)
        """
        self.frame = frame
        self.response = response
        super().__init__(message)

    def __str__(self) -> str:
        """Format error message with context."""
        parts = [super().__str__()]

        if self.frame is not None:
            parts.append(f"Frame: {self.frame!r}")

        if self.response is not None:
            parts.append(f"Response: {self.response!r}")

        return " | ".join(parts)


class EncodingError(PLMError):
    """
    Raised when a frame cannot be encoded.

    This indicates:
    - Unknown command code
    - Payload of the wrong size for the command code
    - Missing or unexpected target address
    """
    pass


class InvalidAddressFormat(PLMError, ValueError):
    """
    Raised when a device address is not in 'HH.HH.HH' form.
    """
    pass


class DecodeResync(PLMError):
    """
    Raised by the frame decoder when the buffer head cannot start a frame.

    Never surfaces to callers: the frame buffer discards ``skip`` bytes
    and retries.
    """

    def __init__(self, message: str, skip: int = 1) -> None:
        self.skip = skip
        super().__init__(message)


class UnexpectedResponse(PLMError):
    """
    Raised when a response frame does not have the expected shape.
    """
    pass


class CommandError(PLMError):
    """
    Base class for failures delivered through a command's completion path.
    """
    pass


class CommandTimeout(CommandError):
    """
    Raised when no matching response arrives before the command deadline.

    This typically indicates:
    - Modem is not responding
    - Device is out of range or unpowered
    - Timeout too short for the command
    """
    pass


class ModemNak(CommandError):
    """
    Raised when the modem or the target device rejected a command.

    ``busy`` is True when the modem sent a bare NAK because it was not
    ready to accept the command; such commands are safe to re-send.
    """

    def __init__(
        self,
        message: str,
        frame: Optional[Any] = None,
        response: Optional[Any] = None,
        busy: bool = False
    ) -> None:
        self.busy = busy
        super().__init__(message, frame=frame, response=response)


class EngineStopped(CommandError):
    """
    Raised when submitting to, or waiting on, an engine that has shut down.
    """
    pass


class EngineNotStarted(CommandError):
    """
    Raised when attempting to use the engine before starting its reader thread.
    """
    pass


class TransportError(PLMError):
    """
    Raised when transport layer fails.

    This indicates:
    - Serial port issues
    - Hardware communication failure
    """
    pass


class TransportClosed(TransportError, CommandError):
    """
    Raised when the transport is closed or the device disconnected.

    This is a fatal error for the engine: outstanding and future commands
    fail until a new connection is established.
    """
    pass
