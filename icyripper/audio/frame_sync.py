"""Alignment of a new recording to the first MP3 frame boundary."""

import re
import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

# 0xFF followed by a byte whose top nibble is 0xE or 0xF.
_MP3_SYNC = re.compile(rb"\xff[\xe0-\xff]")

DEFAULT_LOOKAHEAD = 8192


def find_mp3_frame_sync(data: bytes, limit: Optional[int] = None) -> int:
    """Return the offset of the first MP3 frame sync word, or -1.

    Args:
        data: Bytes to scan
        limit: Only consider sync words starting before this offset
    """
    # The second byte of a word starting at limit - 1 sits at offset limit.
    end = len(data) if limit is None else min(limit + 1, len(data))
    match = _MP3_SYNC.search(data, 0, end)
    return match.start() if match else -1


class SyncState(Enum):
    PENDING = "pending"
    LOCATED = "located"
    GAVE_UP = "gave_up"


class FrameSyncDetector:
    """Drops leading bytes of a recording up to the first frame sync word.

    Chunks are held in a scratch buffer until a sync word is found within the
    lookahead window, or the window fills up without one, in which case the
    raw bytes are released unchanged. Once released, detection is over.
    """

    def __init__(self, lookahead: int = DEFAULT_LOOKAHEAD):
        self.lookahead = lookahead
        self.state = SyncState.PENDING
        self.discarded = 0
        self._scratch = bytearray()

    @property
    def pending(self) -> bool:
        return self.state is SyncState.PENDING

    def feed(self, chunk: bytes) -> Optional[bytes]:
        """Feed a chunk; returns the bytes to write, or None while still searching."""
        if not self.pending:
            return chunk

        self._scratch.extend(chunk)
        offset = find_mp3_frame_sync(self._scratch, self.lookahead)
        if offset >= 0:
            self.state = SyncState.LOCATED
            self.discarded = offset
            if offset:
                logger.debug(f"Frame sync found, skipping {offset} leading bytes")
            return self._release(offset)

        if len(self._scratch) > self.lookahead:
            self.state = SyncState.GAVE_UP
            logger.warning(f"No frame sync within {self.lookahead} bytes, "
                           f"writing {len(self._scratch)} bytes unaligned")
            return self._release(0)

        return None

    def flush(self) -> bytes:
        """Release whatever is still held, unaligned, at the end of a track."""
        if not self.pending:
            return b''
        self.state = SyncState.GAVE_UP
        if self._scratch:
            logger.warning(f"Track ended before frame sync, writing "
                           f"{len(self._scratch)} bytes unaligned")
        return self._release(0)

    def _release(self, offset: int) -> bytes:
        data = bytes(self._scratch[offset:])
        self._scratch = bytearray()
        return data
