"""Stream-related data models."""

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class Metadata:
    """A track announcement parsed from an ICY metadata frame.

    Compared by value: two frames announcing the same fields are the same track.
    """
    title: str = ""
    url: Optional[str] = None
    fields: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for name, value in self.fields:
            if name == key:
                return value
        return default


@dataclass
class StreamInfo:
    """Broadcaster details advertised in the ICY response headers."""
    name: str
    genre: str
    description: str
    url: str
    bitrate: int
    metaint: int  # audio bytes between metadata frames
