"""
Correlation engine.

Owns the single channel to the modem: serializes writes, runs the reader
thread, matches echoes to pending commands and publishes unsolicited events.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from enum import Enum
from typing import Callable, Deque, Optional

from . import codec
from .codec import Frame, FrameBuffer, FrameKind
from .events import EventHub, EventStream
from .session import CommandSession
from .transport import Transport
from ..exceptions import (
    PLMError,
    CommandTimeout,
    EncodingError,
    EngineNotStarted,
    EngineStopped,
    ModemNak,
    TransportClosed,
)
from ..types import Address

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 5.0
DEFAULT_READ_SIZE = 64

Key = tuple[int, Optional[Address]]


class EngineState(Enum):
    NEW = "new"
    RUNNING = "running"
    STOPPED = "stopped"


class PendingRequest:
    """
    A submitted command awaiting its echo.

    ``future`` is the completion slot: it receives the ACK frame, or a
    CommandError, exactly once.
    """

    def __init__(self, command: Frame, deadline: float) -> None:
        self.command = command
        self.deadline = deadline
        self.future: Future = Future()

    @property
    def key(self) -> Key:
        return self.command.key

    def matches(self, frame: Frame) -> bool:
        """Check an echo against this request, including echoed bytes where the echo repeats them."""
        if frame.key != self.key:
            return False
        layout = codec.LAYOUTS[frame.code]
        if layout.send_len == layout.reply_len:
            return self._comparable(frame.payload) == self._comparable(self.command.payload)
        return True

    def _comparable(self, payload: bytes) -> bytes:
        # The extended checksum is rewritten by the encoder
        if self.command.code == codec.INSTEON_SEND and len(payload) == 17:
            return payload[:-1]
        return payload

    def __repr__(self) -> str:
        return f"<PendingRequest {self.command!r} done={self.future.done()}>"


class CorrelationEngine:
    """
    Core protocol engine.

    Coordinates:
    - Transport (exclusive owner of reads and writes)
    - Frame codec (decoding with resynchronisation)
    - Pending request table (correlation and deadlines)
    - Event hub (unsolicited frames)
    - Reader thread (continuous modem monitoring)
    """

    def __init__(
        self,
        transport: Transport,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        log_events: bool = False,
        read_size: int = DEFAULT_READ_SIZE,
        on_disconnect: Optional[Callable[[Exception], None]] = None
    ) -> None:
        """
        Initialize correlation engine.

        Args:
            transport: Transport instance for communication
            command_timeout: Default seconds to wait for a command echo
            log_events: Whether to log unsolicited events at INFO level
            read_size: Maximum bytes per transport read
            on_disconnect: Optional callback for disconnection events
        """
        self.transport = transport
        self.command_timeout = command_timeout
        self.read_size = read_size
        self.hub = EventHub(log_events=log_events)
        self._events: Optional[EventStream] = None

        self._state = EngineState.NEW
        self._frames = FrameBuffer()
        self._pending: dict[Key, Deque[PendingRequest]] = {}
        self._last_written: Optional[PendingRequest] = None
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()

        # Reader thread management
        self._reader_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._on_disconnect = on_disconnect
        self._disconnected = False

        # Error handling
        self._consecutive_errors = 0
        self._max_consecutive_errors = 5

        logger.info("Initialized CorrelationEngine")

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def events(self) -> EventStream:
        """
        Default stream of unsolicited frames.

        Subscribed on first access; events published before then are not
        kept, so an engine nobody reads events from buffers nothing.
        """
        with self._lock:
            if self._events is None:
                self._events = self.hub.subscribe()
            return self._events

    def start(self) -> None:
        """
        Start the reader thread.

        Raises:
            EngineStopped: If the engine has already shut down
        """
        with self._lock:
            if self._state is EngineState.RUNNING:
                logger.warning("CorrelationEngine already started")
                return
            if self._state is EngineState.STOPPED:
                raise EngineStopped("Engine has shut down; create a new one")
            self._state = EngineState.RUNNING

        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            daemon=True,
            name="PLMReaderThread"
        )
        self._reader_thread.start()
        logger.info("Started modem reader thread")

    def close(self) -> None:
        """
        Shut the engine down.

        Stops the reader thread, fails outstanding commands with
        EngineStopped, closes event streams and the transport.
        """
        logger.info("Closing correlation engine")
        self._stop_event.set()
        if (
            self._reader_thread
            and self._reader_thread.is_alive()
            and self._reader_thread is not threading.current_thread()
        ):
            self._reader_thread.join(timeout=1.0)
            if self._reader_thread.is_alive():
                logger.warning("Reader thread did not terminate in time")

        self._shutdown(EngineStopped("Engine was closed"))
        self.transport.close()
        logger.info("Correlation engine closed")

    def listen(self) -> EventStream:
        """Open an additional, independent stream of unsolicited frames."""
        return self.hub.subscribe()

    def submit(self, command: Frame, timeout: Optional[float] = None) -> PendingRequest:
        """
        Write a command and register it for correlation.

        Encoding errors are raised here, before the transport is touched.
        Every other failure is delivered through the returned request's
        future.

        Args:
            command: COMMAND frame to send
            timeout: Seconds to wait for the echo (uses default if None)

        Returns:
            PendingRequest whose future resolves to the ACK frame

        Raises:
            EncodingError: If the command cannot be encoded
            EngineNotStarted: If start() has not been called
            EngineStopped: If the engine has shut down
        """
        if command.kind is not FrameKind.COMMAND:
            raise EncodingError("Only command frames can be submitted", frame=command)
        data = codec.encode(command)

        timeout_val = timeout if timeout is not None else self.command_timeout
        request = PendingRequest(command, time.monotonic() + timeout_val)

        with self._write_lock:
            with self._lock:
                if self._state is EngineState.NEW:
                    raise EngineNotStarted("Engine not started; call start() first", frame=command)
                if self._state is EngineState.STOPPED:
                    raise EngineStopped("Engine has shut down", frame=command)
                # Register before writing so a fast echo cannot be missed
                self._pending.setdefault(request.key, deque()).append(request)
                self._last_written = request

            request.future.add_done_callback(lambda _: self._discard(request))
            logger.debug(f"Sending {command!r}")

            try:
                self.transport.write(data)
            except TransportClosed as e:
                if self._stop_event.is_set():
                    # close() ran between registration and the write
                    logger.debug(f"Engine closed before {command.name} was written")
                    if self._take(request):
                        self._settle(request, error=EngineStopped("Engine was closed", frame=command))
                else:
                    logger.error(f"Transport closed while writing: {e}")
                    self._handle_disconnect(e)
            except PLMError as e:
                logger.error(f"Failed to write {command!r}: {e}")
                if self._take(request):
                    self._settle(request, error=e)

        return request

    def send(self, command: Frame, timeout: Optional[float] = None) -> Frame:
        """
        Send a command and wait for its echo.

        This is a convenience wrapper around CommandSession.send().

        Returns:
            The ACK frame

        Raises:
            CommandTimeout: If no echo arrives in time
            ModemNak: If the modem rejected the command
            TransportClosed: If the transport closed
            EngineStopped: If the engine shut down
        """
        return CommandSession(self, command, timeout=timeout).send()

    def _take(self, request: PendingRequest) -> bool:
        """Remove a request from the pending table; True if it was there."""
        with self._lock:
            queue = self._pending.get(request.key)
            if not queue or request not in queue:
                return False
            queue.remove(request)
            if not queue:
                del self._pending[request.key]
            if self._last_written is request:
                self._last_written = None
            return True

    def _discard(self, request: PendingRequest) -> None:
        if request.future.cancelled() and self._take(request):
            logger.debug(f"Cancelled {request.command!r}")

    def _settle(
        self,
        request: PendingRequest,
        result: Optional[Frame] = None,
        error: Optional[Exception] = None
    ) -> None:
        # Must be called without holding self._lock: done callbacks take it
        if not request.future.set_running_or_notify_cancel():
            logger.debug(f"Discarding response for cancelled {request.command!r}")
            return
        if error is not None:
            request.future.set_exception(error)
        else:
            request.future.set_result(result)

    def pending_count(self) -> int:
        """Number of requests awaiting an echo."""
        with self._lock:
            return sum(len(queue) for queue in self._pending.values())

    def _reader_loop(self) -> None:
        """
        Continuously read from the modem.

        Decodes frames and routes each one to a pending request or the
        event hub; expires overdue requests between reads.
        """
        logger.debug("Reader thread started")

        while not self._stop_event.is_set():
            try:
                data = self.transport.read(self.read_size)

                # Reset error counter on successful read
                self._consecutive_errors = 0
            except TransportClosed as e:
                if not self._stop_event.is_set():
                    logger.error("Device disconnected, stopping reader thread")
                    self._handle_disconnect(e)
                break
            except Exception as e:
                # Handle consecutive errors with backoff
                self._consecutive_errors += 1
                logger.error(
                    f"Error in reader loop ({self._consecutive_errors}/"
                    f"{self._max_consecutive_errors}): {e}"
                )

                if self._consecutive_errors >= self._max_consecutive_errors:
                    logger.error(
                        f"Too many consecutive errors ({self._consecutive_errors}), "
                        "stopping reader thread"
                    )
                    self._handle_disconnect(TransportClosed(f"Transport failed: {e}"))
                    break

                # Exponential backoff: 0.1s, 0.2s, 0.4s, 0.8s
                self._stop_event.wait(0.1 * (2 ** (self._consecutive_errors - 1)))
                self._expire_pending()
                continue

            if data:
                self._frames.feed(data)
                for frame in self._frames:
                    self._dispatch(frame)

            self._expire_pending()

        logger.debug("Reader thread stopped")

    def _dispatch(self, frame: Frame) -> None:
        """Route a decoded frame."""
        logger.debug(f"Reader received: {frame!r}")

        if frame.kind is FrameKind.EVENT:
            self.hub.publish(frame)
            return

        if frame.kind is FrameKind.MALFORMED:
            logger.warning(f"Dropping malformed frame: {frame!r}")
            return

        if frame.kind is FrameKind.NAK and frame.code == codec.NAK:
            self._modem_busy()
            return

        request = self._match(frame)
        if request is None:
            logger.warning(f"Dropping stale or unmatched response: {frame!r}")
            return

        if frame.kind is FrameKind.ACK:
            self._settle(request, result=frame)
        else:
            self._settle(request, error=ModemNak(
                f"Modem rejected {frame.name}", frame=request.command, response=frame
            ))

    def _match(self, frame: Frame) -> Optional[PendingRequest]:
        with self._lock:
            queue = self._pending.get(frame.key)
            if not queue:
                return None
            for request in queue:
                if request.matches(frame):
                    break
            else:
                return None
            queue.remove(request)
            if not queue:
                del self._pending[frame.key]
            if self._last_written is request:
                self._last_written = None
            return request

    def _modem_busy(self) -> None:
        with self._lock:
            request = self._last_written
        if request is not None and self._take(request):
            logger.warning(f"Modem busy, {request.command.name} was dropped")
            self._settle(request, error=ModemNak(
                "Modem busy, command not accepted", frame=request.command, busy=True
            ))
        else:
            logger.warning("Modem busy NAK with no outstanding command")

    def _expire_pending(self) -> None:
        """Fail every request whose deadline has passed."""
        now = time.monotonic()
        expired: list[PendingRequest] = []
        with self._lock:
            for key in list(self._pending):
                queue = self._pending[key]
                for request in [r for r in queue if r.deadline <= now]:
                    queue.remove(request)
                    expired.append(request)
                    if self._last_written is request:
                        self._last_written = None
                if not queue:
                    del self._pending[key]

        for request in expired:
            logger.error(f"Command timed out: {request.command!r}")
            self._settle(request, error=CommandTimeout(
                f"No response to {request.command.name}", frame=request.command
            ))

    def _handle_disconnect(self, error: TransportClosed) -> None:
        first = not self._disconnected
        self._disconnected = True
        self._shutdown(error)
        if first and self._on_disconnect:
            self._on_disconnect(error)

    def _shutdown(self, error: Exception) -> None:
        """Enter the terminal state and fail everything outstanding."""
        with self._lock:
            if self._state is EngineState.STOPPED and not self._pending:
                return
            self._state = EngineState.STOPPED
            self._stop_event.set()
            outstanding = [r for queue in self._pending.values() for r in queue]
            self._pending.clear()
            self._last_written = None

        if outstanding:
            logger.error(f"Failing {len(outstanding)} outstanding command(s): {error}")
        for request in outstanding:
            self._settle(request, error=error)
        self.hub.close()

    def is_running(self) -> bool:
        """
        Check if the reader thread is running.

        Returns:
            True if running
        """
        return self._state is EngineState.RUNNING

    def is_disconnected(self) -> bool:
        """
        Check if the device was disconnected during operation.

        Returns:
            True if device was disconnected, False otherwise
        """
        return self._disconnected

    def __enter__(self):
        """Context manager entry."""
        if self._state is EngineState.NEW:
            self.start()
        return self

    def __exit__(self, *exc):
        """Context manager exit."""
        self.close()
