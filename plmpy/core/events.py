"""
Unsolicited event delivery.

Fans decoded event frames out to any number of pull-based streams in a
thread-safe manner.
"""

import logging
import queue
import threading
import time
from typing import Callable, Iterator, Optional

from .codec import Frame
from ..exceptions import CommandTimeout, EngineStopped

logger = logging.getLogger(__name__)

# Terminal marker placed on a stream when it is closed
_CLOSED = object()


class EventStream:
    """
    Unbounded, order-preserving sequence of unsolicited frames.

    Iterating blocks until the next frame and stops once the stream is
    closed and drained.

    Example:

    .. code-block:: python

        with modem.listen() as stream:
            for frame in stream:
                print(frame)
    """

    def __init__(self, hub: Optional["EventHub"] = None) -> None:
        self._hub = hub
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._closed = False

    def _put(self, frame: Frame) -> None:
        self._queue.put(frame)

    def _terminate(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put(_CLOSED)

    def get(self, timeout: Optional[float] = None) -> Optional[Frame]:
        """
        Pull the next frame.

        Args:
            timeout: Seconds to wait, None to wait until a frame arrives

        Returns:
            The next frame, or None once the stream is closed

        Raises:
            queue.Empty: If no frame arrived within the timeout
        """
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            # Keep the marker for later readers
            self._queue.put(_CLOSED)
            return None
        return item

    def wait_for(self, predicate: Callable[[Frame], bool], timeout: float) -> Frame:
        """
        Pull frames until one satisfies ``predicate``.

        Frames that do not match are dropped from this stream only.

        Args:
            predicate: Test applied to each frame
            timeout: Total seconds to wait

        Returns:
            The first matching frame

        Raises:
            CommandTimeout: If nothing matched in time
            EngineStopped: If the stream closed first
        """
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise CommandTimeout(f"No matching event within {timeout}s")
            try:
                frame = self.get(timeout=remaining)
            except queue.Empty:
                raise CommandTimeout(f"No matching event within {timeout}s") from None
            if frame is None:
                raise EngineStopped("Event stream closed while waiting")
            if predicate(frame):
                return frame

    def __iter__(self) -> Iterator[Frame]:
        while True:
            frame = self.get()
            if frame is None:
                return
            yield frame

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        """Number of frames waiting to be pulled."""
        return self._queue.qsize()

    def close(self) -> None:
        """Stop receiving frames and deliver the terminal marker."""
        if self._hub is not None:
            self._hub.unsubscribe(self)
        self._terminate()

    def __enter__(self) -> "EventStream":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class EventHub:
    """
    Publishes unsolicited frames to subscribed streams.

    Every stream sees every frame published after it subscribed, in
    publication order.
    """

    def __init__(self, log_events: bool = False) -> None:
        """
        Initialize event hub.

        Args:
            log_events: Whether to log events at INFO level
        """
        self.log_events = log_events
        self._streams: list[EventStream] = []
        self._closed = False
        self._lock = threading.Lock()

    def subscribe(self) -> EventStream:
        """
        Create a new stream receiving all subsequent events.

        A stream created after the hub closed is already terminated.
        """
        stream = EventStream(self)
        with self._lock:
            if self._closed:
                stream._terminate()
            else:
                self._streams.append(stream)
        logger.debug(f"Event stream subscribed ({len(self._streams)} active)")
        return stream

    def unsubscribe(self, stream: EventStream) -> bool:
        with self._lock:
            if stream in self._streams:
                self._streams.remove(stream)
                return True
            return False

    def publish(self, frame: Frame) -> None:
        """
        Deliver an event frame to every subscribed stream.

        Args:
            frame: Event frame to publish
        """
        if self.log_events:
            logger.info(f"Event received: {frame!r}")
        else:
            logger.debug(f"Event received: {frame!r}")

        with self._lock:
            for stream in self._streams:
                stream._put(frame)

    def close(self) -> None:
        """Terminate all streams."""
        with self._lock:
            self._closed = True
            streams, self._streams = self._streams, []
        for stream in streams:
            stream._terminate()
        logger.info(f"Closed {len(streams)} event stream(s)")

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._streams)
