"""Error taxonomy for stream ingestion and track recording."""

from typing import List


class RipperError(Exception):
    """Base class for all icyripper errors."""


class ResolutionError(RipperError):
    """A playlist URL could not be fetched, recognised or parsed."""


class ProtocolError(RipperError):
    """The origin does not speak the ICY framing we require."""


class UnexpectedEOF(ProtocolError):
    """The stream ended in the middle of a metadata frame."""


class TransportError(RipperError):
    """Connecting to or reading from the origin failed."""


class WriteError(RipperError):
    """Writing, syncing, renaming or stat-ing a track file failed."""


class BridgeClosedError(RipperError):
    """Write attempted on a closed channel bridge."""


class ShutdownError(RipperError):
    """One or more steps of the shutdown drain failed."""

    def __init__(self, errors: List[Exception]):
        self.errors = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors))
