"""Services layer for icyripper recording logic."""

from .ripper import Ripper, RipperState
from .track_writer import TrackWriter

__all__ = [
    "Ripper",
    "RipperState",
    "TrackWriter",
]
