"""Track writer: persists one track from the channel bridge to disk."""

import queue
import logging
import threading
from pathlib import Path
from typing import Optional, Union

from ..audio.bridge import ChannelBridge
from ..audio.frame_sync import FrameSyncDetector
from ..errors import WriteError
from ..models.track import CommitResult
from ..storage.track_file import TrackFile, format_bytes

logger = logging.getLogger(__name__)


class TrackWriter:
    """Background task that records the bridge's chunks into one track file.

    The writer runs until it is cancelled (the title changed) or the bridge is
    closed (shutdown). On cancellation it first takes the chunks already
    queued: the producer is blocked in the change notification while the
    writer is stopped, so those are exactly the bytes that precede the
    boundary. It then flushes, fsyncs and commits before exiting.
    """

    def __init__(self, bridge: ChannelBridge, destination: Union[str, Path],
                 buffer_size: int, poll_interval: float = 0.05, frame_sync: bool = True):
        """Initialize the writer.

        Args:
            bridge: Queue to consume audio chunks from
            destination: Final path of the recording
            buffer_size: Bytes to batch before each disk write
            poll_interval: How often a waiting writer checks for cancellation
            frame_sync: Align the start of the file to the first frame sync word
        """
        self.bridge = bridge
        self.destination = Path(destination)
        self.poll_interval = poll_interval

        self.file = TrackFile(self.destination, buffer_size)
        self.sync = FrameSyncDetector() if frame_sync else None

        self.error: Optional[Exception] = None
        self.result: Optional[CommitResult] = None
        self.bytes_received = 0

        self._cancel_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start writing in a background thread."""
        if self._thread is not None:
            raise RuntimeError("track writer already started")
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.name = f"TrackWriter[{self.destination.stem}]"
        self._thread.start()

    def cancel(self) -> None:
        """Ask the writer to finish the track and exit."""
        self._cancel_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def stop(self) -> None:
        """Cancel and wait for the flush-and-commit sequence to complete."""
        self.cancel()
        self.join()

    def _run(self) -> None:
        with self.bridge.consumer():
            logger.info(f"Recording {self.destination}")
            try:
                self.file.open()
                self._pump()
            except WriteError as e:
                logger.error(f"Error writing track {self.destination}, abandoning it: {e}")
                self.error = e
            finally:
                self._finish()

            if self.error is not None:
                self._discard_until_done()

    def _pump(self) -> None:
        while True:
            if self._cancel_event.is_set():
                for chunk in self.bridge.drain():
                    self._write(chunk)
                return

            try:
                chunk = self.bridge.read(timeout=self.poll_interval)
            except queue.Empty:
                continue
            if chunk is None:
                logger.debug("Channel bridge closed, finishing track")
                return
            self._write(chunk)

    def _write(self, chunk: bytes) -> None:
        self.bytes_received += len(chunk)
        if self.sync is not None and self.sync.pending:
            data = self.sync.feed(chunk)
            if not data:
                return
        else:
            data = chunk
        self.file.write(data)

    def _finish(self) -> None:
        """Flush, fsync, close and commit whatever was recorded."""
        if self.error is None and self.sync is not None:
            try:
                residual = self.sync.flush()
                if residual:
                    self.file.write(residual)
            except WriteError as e:
                logger.error(f"Error writing track {self.destination}: {e}")
                self.error = e

        if not self.file.is_open:
            return

        try:
            self.file.close()
        except WriteError as e:
            logger.error(f"Error closing track {self.destination}: {e}")
            self.error = self.error or e

        try:
            if self.file.bytes_written == 0:
                self.file.discard()
                logger.info(f"No audio recorded for {self.destination}, nothing to commit")
                return
            self.result = self.file.commit()
        except WriteError as e:
            logger.error(f"Error committing track {self.destination}: {e}")
            self.error = self.error or e
            return

        logger.info(f"Finished {self.destination}: received {format_bytes(self.bytes_received)}, "
                    f"wrote {format_bytes(self.file.bytes_written)} ({self.result.value})")

    def _discard_until_done(self) -> None:
        # Keep the bridge flowing so a dead writer never stalls the stream read.
        discarded = 0
        while not self._cancel_event.is_set():
            try:
                chunk = self.bridge.read(timeout=self.poll_interval)
            except queue.Empty:
                continue
            if chunk is None:
                break
            discarded += len(chunk)
        discarded += sum(len(chunk) for chunk in self.bridge.drain())
        if discarded:
            logger.warning(f"Discarded {format_bytes(discarded)} of audio for {self.destination}")
