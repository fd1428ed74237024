"""Ripper service: records a stream into one file per announced track."""

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pubsub import pub

from ..audio.bridge import ChannelBridge
from ..config import RipperSettings
from ..errors import BridgeClosedError, ProtocolError, ShutdownError, TransportError, UnexpectedEOF
from ..models.stream import Metadata
from ..shoutcast.publisher import MetadataPublisher
from ..shoutcast.stream import IcyStream, open_stream
from ..storage.file_manager import FileManager
from ..storage.track_file import format_bytes
from .track_writer import TrackWriter

logger = logging.getLogger(__name__)

# Matches the chunk size of a plain buffered copy loop.
COPY_CHUNK_SIZE = 32 * 1024

StreamOpener = Callable[..., IcyStream]


class RipperState(Enum):
    NEW = "new"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    TERMINATED = "terminated"
    FAILED = "failed"


class Ripper:
    """Lifecycle owner of one stream session and its sequence of track writers.

    ``start()`` opens the session, ``run()`` copies audio into the channel
    bridge until stopped, and ``stop()`` drains in order: session transport
    first, then the copy task, then the bridge, which lets the last writer
    commit. Title changes arrive on the copy thread; the outgoing writer is
    fully joined before the next one starts, so at most one writer ever
    consumes the bridge.
    """

    def __init__(self, settings: RipperSettings, opener: StreamOpener = open_stream,
                 poll_interval: float = 0.05):
        """Initialize the ripper.

        Args:
            settings: Validated ripper settings
            opener: Opens the stream session; called as opener(url, on_metadata=..., ...)
            poll_interval: Cancellation polling interval of track writers
        """
        self.settings = settings
        self.opener = opener
        self.poll_interval = poll_interval

        self.state = RipperState.NEW
        self.failure: Optional[Exception] = None

        self.stream: Optional[IcyStream] = None
        self.bridge: Optional[ChannelBridge] = None
        self.file_manager = FileManager(settings.dir)
        self.publisher = MetadataPublisher(settings.metadata_topic)

        self.writer: Optional[TrackWriter] = None
        self.tracks_started = 0
        self.bytes_copied = 0

        self._copy_thread: Optional[threading.Thread] = None
        self._copy_error: Optional[Exception] = None
        self._stop_event = threading.Event()
        self._subscribed = False

    def start(self) -> None:
        """Open the stream session. Any failure here is fatal to the ripper."""
        self.state = RipperState.STARTING
        logger.info(f"Starting ripper for {self.settings.url}")
        try:
            self.stream = self.opener(
                self.settings.url,
                on_metadata=self.publisher.get_callback(),
                user_agent=self.settings.user_agent,
                connect_timeout=self.settings.connect_timeout,
                header_timeout=self.settings.header_timeout,
            )
        except Exception as e:
            logger.error(f"Error opening stream: {e}")
            self.state = RipperState.FAILED
            self.failure = e
            raise

        self.bridge = ChannelBridge(poll_interval=self.poll_interval)
        pub.subscribe(self._on_metadata, self.settings.metadata_topic)
        self._subscribed = True

        self.file_manager.salvage_temp_files(self.stream.name)
        self.state = RipperState.RUNNING

    def run(self) -> None:
        """Copy the stream until stop is requested or the stream ends.

        Raises:
            Exception: The copy task died, usually with TransportError or ProtocolError;
                the ripper has failed
        """
        if self.state is not RipperState.RUNNING:
            raise RuntimeError(f"cannot run ripper in state {self.state.value}")

        self._copy_thread = threading.Thread(target=self._copy_loop, daemon=True)
        self._copy_thread.name = "StreamCopyThread"
        self._copy_thread.start()

        self._stop_event.wait()

        if self._copy_error is not None:
            self.state = RipperState.FAILED
            self.failure = self._copy_error
            raise self._copy_error

    def request_stop(self) -> None:
        """Make ``run()`` return. Safe to call from signal handlers and other threads."""
        self._stop_event.set()

    def _copy_loop(self) -> None:
        logger.info("Starting copy")
        try:
            while True:
                chunk = self.stream.read(COPY_CHUNK_SIZE)
                if not chunk:
                    logger.info("Stream ended")
                    break
                self.bridge.write(chunk)
                self.bytes_copied += len(chunk)
        except BridgeClosedError:
            logger.debug("Channel bridge closed, stopping copy")
        except UnexpectedEOF as e:
            logger.warning(f"Stream ended mid-frame, treating as end of stream: {e}")
        except (TransportError, ProtocolError) as e:
            logger.error(f"Error copying stream to buffer: {e}, written {format_bytes(self.bytes_copied)}")
            self._copy_error = e
        except Exception as e:
            logger.error(f"Unexpected error in copy loop: {e}", exc_info=True)
            self._copy_error = e
        finally:
            logger.info(f"Copy finished after {format_bytes(self.bytes_copied)}")
            self._stop_event.set()

    def _on_metadata(self, metadata: Metadata) -> None:
        """Rotate to a new track file; runs synchronously on the copy thread."""
        logger.info(f"Now listening to: {metadata.title!r}")
        try:
            destination = self.file_manager.track_path(self.stream.name, metadata.title)
            if self.writer is not None and self.writer.destination == destination:
                logger.debug(f"Still recording {destination}")
                return

            if self.writer is not None:
                logger.debug(f"Stopping writer for {self.writer.destination}")
                self.writer.stop()

            self.writer = self._new_writer(destination)
            self.writer.start()
            self.tracks_started += 1
        except Exception as e:
            # Track-level failures never take the stream down.
            logger.error(f"Error switching to track {metadata.title!r}: {e}", exc_info=True)

    def _new_writer(self, destination: Path) -> TrackWriter:
        return TrackWriter(self.bridge, destination, self.settings.write_buffer_size,
                           poll_interval=self.poll_interval)

    def stop(self) -> None:
        """Shut down in order: transport, copy task, bridge, last writer.

        Raises:
            ShutdownError: One or more steps failed; carries every error
        """
        logger.info("Stopping")
        self.state = RipperState.STOPPING
        self._stop_event.set()
        errors: List[Exception] = []

        if self._subscribed:
            pub.unsubscribe(self._on_metadata, self.settings.metadata_topic)
            self._subscribed = False

        if self.stream is not None:
            try:
                self.stream.close()
            except TransportError as e:
                errors.append(e)

        if self.bridge is not None and self.writer is None:
            # No consumer yet: a full bridge would otherwise block the copy thread forever.
            self.bridge.close()

        if self._copy_thread is not None:
            self._copy_thread.join()

        if self.bridge is not None:
            self.bridge.close()
            if self.writer is None and self.bridge.pending:
                logger.warning(f"Stream stopped before any title was announced, "
                               f"dropping {self.bridge.pending} queued chunks")

        if self.writer is not None:
            self.writer.join()
            if self.writer.error is not None:
                errors.append(self.writer.error)

        if self.state is not RipperState.FAILED:
            self.state = RipperState.TERMINATED
        logger.info(f"Stopped after {self.tracks_started} tracks, {format_bytes(self.bytes_copied)} copied")

        if errors:
            raise ShutdownError(errors)

    def status(self) -> Dict[str, Any]:
        """Get current ripper status."""
        writer = self.writer
        return {
            "state": self.state.value,
            "url": self.settings.url,
            "station": self.stream.name if self.stream else None,
            "current_track": str(writer.destination) if writer and writer.is_running else None,
            "tracks_started": self.tracks_started,
            "bytes_copied": self.bytes_copied,
            "pending_chunks": self.bridge.pending if self.bridge else 0,
            "failure": str(self.failure) if self.failure else None,
        }
