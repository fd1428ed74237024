"""Bounded byte-chunk queue between the stream copy loop and track writers."""

import queue
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from ..errors import BridgeClosedError

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10240

_CLOSED = object()


class ChannelBridge:
    """FIFO of audio chunks with one producer and at most one consumer at a time.

    A full queue blocks the producer: slowing the origin read is preferred
    over dropping audio. ``close()`` never blocks; consumers observe it once
    everything queued before it has been read.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, poll_interval: float = 0.05):
        """Initialize the bridge.

        Args:
            capacity: Maximum number of queued chunks
            poll_interval: How often blocked calls re-check the closed flag
        """
        self.capacity = capacity
        self.poll_interval = poll_interval

        self._queue: queue.Queue = queue.Queue(maxsize=capacity)
        self._lock = threading.Lock()
        self._closed = False
        self._eof = False

        self._consumers = 0
        self.max_consumers = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def write(self, chunk: bytes) -> int:
        """Queue a chunk, blocking while the bridge is saturated.

        Raises:
            BridgeClosedError: The bridge has been closed
        """
        warned = False
        while True:
            if self._closed:
                raise BridgeClosedError("write to closed channel bridge")
            try:
                self._queue.put(chunk, timeout=self.poll_interval)
                return len(chunk)
            except queue.Full:
                if not warned:
                    logger.warning(f"Channel bridge saturated ({self.capacity} chunks), "
                                   f"throttling stream read")
                    warned = True

    def read(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """Return the next chunk, or None once the bridge is closed and drained.

        Raises:
            queue.Empty: Nothing arrived within ``timeout`` seconds
        """
        if self._eof:
            return None

        remaining = timeout
        while True:
            wait = self.poll_interval if remaining is None else min(remaining, self.poll_interval)
            try:
                item = self._queue.get(timeout=max(wait, 0))
            except queue.Empty:
                if self._closed and self._queue.empty():
                    self._eof = True
                    return None
                if remaining is not None:
                    remaining -= wait
                    if remaining <= 0:
                        raise
                continue

            if item is _CLOSED:
                self._eof = True
                return None
            return item

    def drain(self) -> List[bytes]:
        """Take every chunk queued right now without blocking."""
        chunks = []
        while not self._eof:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is _CLOSED:
                self._eof = True
                break
            chunks.append(item)
        return chunks

    @contextmanager
    def consumer(self) -> Iterator["ChannelBridge"]:
        """Attach as the bridge's consumer for the duration of the block.

        Raises:
            RuntimeError: Another consumer is already attached
        """
        with self._lock:
            if self._consumers:
                raise RuntimeError("channel bridge already has an active consumer")
            self._consumers += 1
            self.max_consumers = max(self.max_consumers, self._consumers)
        try:
            yield self
        finally:
            with self._lock:
                self._consumers -= 1

    def close(self) -> None:
        """Close the bridge. Idempotent and non-blocking."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            # Consumers fall back to the closed flag once the queue empties.
            pass
        logger.debug("Channel bridge closed")
