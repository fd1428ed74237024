"""Batched writes to a temporary track file and its crash-safe commit."""

import os
import logging
import threading
from pathlib import Path
from typing import BinaryIO, Optional, Union

from ..errors import WriteError
from ..models.track import CommitResult

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".part"


def temp_path_for(destination: Path, suffix: str = TEMP_SUFFIX) -> Path:
    return destination.with_name(destination.name + suffix)


def commit_track(temp_path: Union[str, Path], destination: Union[str, Path]) -> CommitResult:
    """Move a finished temp file into place unless a larger recording already exists.

    A longer recording of the same title is assumed more complete; a temp file
    that is smaller than or equal to the destination is deleted.

    Raises:
        WriteError: stat, rename or delete failed
    """
    temp_path = Path(temp_path)
    destination = Path(destination)

    try:
        temp_size = temp_path.stat().st_size
    except OSError as e:
        raise WriteError(f"cannot stat temp file {temp_path}: {e}") from e

    try:
        dest_size: Optional[int] = destination.stat().st_size
    except FileNotFoundError:
        dest_size = None
    except OSError as e:
        raise WriteError(f"cannot stat destination {destination}: {e}") from e

    try:
        if dest_size is None:
            os.replace(temp_path, destination)
            logger.info(f"Committed {destination} ({format_bytes(temp_size)})")
            return CommitResult.CREATED

        if temp_size > dest_size:
            os.replace(temp_path, destination)
            logger.info(f"Replaced {destination} with longer recording "
                        f"({format_bytes(temp_size)} > {format_bytes(dest_size)})")
            return CommitResult.REPLACED

        os.remove(temp_path)
    except OSError as e:
        raise WriteError(f"cannot commit {temp_path} to {destination}: {e}") from e

    logger.info(f"Kept existing {destination} ({format_bytes(dest_size)}), "
                f"dropped shorter recording ({format_bytes(temp_size)})")
    return CommitResult.DISCARDED


def format_bytes(size: int) -> str:
    """Format a byte count with IEC units (KiB, MiB, ...)."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}iB"


class TrackFile:
    """One track's temporary file with an in-memory write batch.

    Bytes accumulate until ``buffer_size`` is reached and are then written in
    a single call. Writes and flushes share one lock.
    """

    def __init__(self, destination: Union[str, Path], buffer_size: int,
                 temp_suffix: str = TEMP_SUFFIX):
        """Initialize the track file.

        Args:
            destination: Final path of the recording
            buffer_size: Bytes to batch before writing to disk
            temp_suffix: Suffix of the sibling file used while recording
        """
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        self.destination = Path(destination)
        self.temp_path = temp_path_for(self.destination, temp_suffix)
        self.buffer_size = buffer_size
        self.bytes_written = 0

        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._file: Optional[BinaryIO] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self) -> None:
        """Create the destination directory and open the temp file."""
        try:
            self.destination.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.temp_path, 'wb')
        except OSError as e:
            raise WriteError(f"cannot create {self.temp_path}: {e}") from e
        logger.debug(f"Opened {self.temp_path}")

    def write(self, data: bytes) -> int:
        with self._lock:
            if self._file is None:
                raise WriteError(f"write to unopened track file {self.temp_path}")
            self._buffer.extend(data)
            if len(self._buffer) >= self.buffer_size:
                self._flush_locked()
        return len(data)

    def flush(self) -> None:
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        if not self._buffer or self._file is None:
            return
        try:
            self._file.write(self._buffer)
        except OSError as e:
            raise WriteError(f"error writing to {self.temp_path}: {e}") from e
        self.bytes_written += len(self._buffer)
        logger.debug(f"Flushed {format_bytes(len(self._buffer))} to {self.temp_path}")
        self._buffer.clear()

    def close(self) -> None:
        """Flush residual bytes, fsync and close. Idempotent."""
        with self._lock:
            if self._closed or self._file is None:
                self._closed = True
                return
            self._closed = True
            f, self._file = self._file, None
            try:
                if self._buffer:
                    f.write(self._buffer)
                    self.bytes_written += len(self._buffer)
                    self._buffer.clear()
                f.flush()
                os.fsync(f.fileno())
            except OSError as e:
                raise WriteError(f"error finishing {self.temp_path}: {e}") from e
            finally:
                f.close()

    def commit(self) -> CommitResult:
        """Close the file and move it into place per the larger-wins policy."""
        self.close()
        return commit_track(self.temp_path, self.destination)

    def discard(self) -> None:
        """Close the file and delete it without committing."""
        try:
            self.close()
        finally:
            try:
                self.temp_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise WriteError(f"cannot remove {self.temp_path}: {e}") from e
        logger.debug(f"Discarded {self.temp_path}")
