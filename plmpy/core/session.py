"""
Per-command session.

Builds on the correlation engine to issue one command and await its echo.
No retries happen here; see plmpy.features.retry for an opt-in policy.
"""

import logging
from concurrent.futures import TimeoutError as FutureTimeout
from typing import TYPE_CHECKING, Optional

from .codec import Frame
from ..exceptions import CommandTimeout

if TYPE_CHECKING:
    from .engine import CorrelationEngine, PendingRequest

logger = logging.getLogger(__name__)

# Extra wait beyond the deadline, covering the reader's sweep interval
DEADLINE_GRACE = 0.5


class CommandSession:
    """
    One command and its resolution.

    Example:

    .. code-block:: python

        session = CommandSession(engine, Frame.command(GET_MODEM_INFO))
        ack = session.send()
    """

    def __init__(
        self,
        engine: "CorrelationEngine",
        command: Frame,
        timeout: Optional[float] = None
    ) -> None:
        """
        Initialize command session.

        Args:
            engine: Engine to submit through
            command: COMMAND frame to send
            timeout: Seconds to wait for the echo (engine default if None)
        """
        self.engine = engine
        self.command = command
        self.timeout = timeout if timeout is not None else engine.command_timeout
        self._request: Optional["PendingRequest"] = None

    def submit(self) -> "CommandSession":
        """
        Submit the command without waiting.

        Raises:
            EncodingError: If the command cannot be encoded
            EngineNotStarted: If the engine is not started
            EngineStopped: If the engine has shut down
        """
        if self._request is not None:
            raise RuntimeError("Command already submitted")
        self._request = self.engine.submit(self.command, timeout=self.timeout)
        return self

    def wait(self) -> Frame:
        """
        Wait for the command to resolve.

        Returns:
            The ACK frame echoed by the modem

        Raises:
            CommandTimeout: If no echo arrives before the deadline
            ModemNak: If the modem rejected the command
            TransportClosed: If the transport closed first
            EngineStopped: If the engine shut down first
            concurrent.futures.CancelledError: If the session was cancelled
        """
        if self._request is None:
            raise RuntimeError("Command not submitted")

        try:
            return self._request.future.result(timeout=self.timeout + DEADLINE_GRACE)
        except FutureTimeout:
            # The reader should have expired it; do it from here instead
            if not self.cancel() and self._request.future.done():
                return self._request.future.result()
            raise CommandTimeout(
                f"No response to {self.command.name}", frame=self.command
            ) from None

    def send(self) -> Frame:
        """Submit the command and wait for its echo."""
        self.submit()
        try:
            return self.wait()
        finally:
            # No-op once resolved; removes the entry if the wait was interrupted
            self.cancel()

    def cancel(self) -> bool:
        """
        Abandon the command.

        Returns:
            True if the request was still pending and is now removed
        """
        if self._request is None:
            return False
        cancelled = self._request.future.cancel()
        if cancelled:
            logger.debug(f"Session cancelled: {self.command!r}")
        return cancelled

    @property
    def done(self) -> bool:
        return self._request is not None and self._request.future.done()
