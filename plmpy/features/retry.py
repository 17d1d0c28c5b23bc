"""
Opt-in retry policy for modem commands.

The core never retries; managers send through a RetryPolicy, which by
default makes a single attempt.
"""

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..core.codec import Frame
from ..exceptions import ModemNak

if TYPE_CHECKING:
    from ..core import CorrelationEngine

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """
    Re-send policy for NAKed commands.

    Timeouts are never retried: a command that timed out may still have
    reached the device, and repeating it is not safe for toggles.

    Attributes:
        attempts: Total number of attempts (1 = no retry)
        delay: Seconds to wait between attempts
    """
    attempts: int = 1
    delay: float = 0.25

    def send(
        self,
        engine: "CorrelationEngine",
        command: Frame,
        timeout: Optional[float] = None,
        retry_nak: bool = True
    ) -> Frame:
        """
        Send a command, re-sending on NAK.

        Args:
            engine: Engine to send through
            command: COMMAND frame
            timeout: Echo timeout per attempt (engine default if None)
            retry_nak: Retry echo NAKs too; if False only modem-busy NAKs
                are retried (for commands where NAK is a normal answer)

        Returns:
            The ACK frame

        Raises:
            ModemNak: If the last attempt was NAKed
        """
        attempt = 1
        while True:
            try:
                return engine.send(command, timeout=timeout)
            except ModemNak as e:
                if attempt >= self.attempts or not (e.busy or retry_nak):
                    raise
                logger.warning(
                    f"{command.name} not acknowledged, retrying after {self.delay}s "
                    f"(attempt {attempt}/{self.attempts})"
                )
                attempt += 1
                time.sleep(self.delay)
