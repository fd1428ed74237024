"""Track recording data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class CommitResult(Enum):
    """Outcome of committing a temporary track file."""
    CREATED = "created"        # no destination existed
    REPLACED = "replaced"      # temp was larger than the existing destination
    DISCARDED = "discarded"    # existing destination kept, temp removed


@dataclass
class TrackInfo:
    """A committed recording found on disk."""
    station: str
    title: str
    path: str
    size_bytes: int
    modified: datetime
