"""Data models for the icyripper application."""

from .stream import Metadata, StreamInfo
from .track import CommitResult, TrackInfo

__all__ = [
    "Metadata",
    "StreamInfo",
    "CommitResult",
    "TrackInfo",
]
