"""ICY stream demuxer: audio bytes out, metadata frames stripped."""

import logging
import threading
from typing import Callable, Mapping, Optional, Protocol

from ..config import DEFAULT_USER_AGENT
from ..errors import ProtocolError, TransportError, UnexpectedEOF
from ..models.stream import Metadata, StreamInfo
from .metadata import parse_metadata
from .transport import HttpSource

logger = logging.getLogger(__name__)

MetadataCallback = Callable[[Metadata], None]

# Each unit of the metadata length byte stands for 16 bytes of text.
METADATA_BLOCK_UNIT = 16


class ByteSource(Protocol):
    def read(self, size: int) -> bytes: ...

    def close(self) -> None: ...


def _parse_int_header(headers: Mapping[str, str], name: str) -> Optional[int]:
    raw = headers.get(name)
    if raw is None or not raw.strip():
        return None
    # Some servers repeat the value, e.g. "icy-br: 128,128".
    try:
        return int(raw.split(",")[0].strip())
    except ValueError:
        raise ProtocolError(f"cannot parse {name}: {raw!r}")


def stream_info_from_headers(headers: Mapping[str, str]) -> StreamInfo:
    """Build StreamInfo from ICY response headers.

    Raises:
        ProtocolError: icy-metaint is missing or invalid, or icy-br is unparsable
    """
    bitrate = _parse_int_header(headers, "icy-br") or 0
    metaint = _parse_int_header(headers, "icy-metaint")
    if metaint is None:
        raise ProtocolError("server did not advertise icy-metaint; ICY metadata is required")
    if metaint <= 0:
        raise ProtocolError(f"invalid icy-metaint: {metaint}")

    return StreamInfo(
        name=headers.get("icy-name", "").strip(),
        genre=headers.get("icy-genre", "").strip(),
        description=headers.get("icy-description", "").strip(),
        url=headers.get("icy-url", "").strip(),
        bitrate=bitrate,
        metaint=metaint,
    )


class IcyStream:
    """An open ICY session exposing only the audio bytes of the stream.

    Every ``metaint`` audio bytes the origin inserts one metadata frame. A
    single ``read()`` never crosses such a boundary: the frame is consumed at
    the start of the following call, so the change callback always runs after
    every preceding audio byte has been handed to the caller.
    """

    def __init__(self, source: ByteSource, info: StreamInfo,
                 on_metadata: Optional[MetadataCallback] = None):
        """Initialize the demuxer.

        Args:
            source: Raw byte source positioned at the first audio byte
            info: Broadcaster details, including the metadata interval
            on_metadata: Called once per distinct metadata value, on the read path
        """
        self.info = info
        self.on_metadata = on_metadata
        self.metaint = info.metaint
        self.pos = 0
        self.metadata: Optional[Metadata] = None

        self._source = source
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def genre(self) -> str:
        return self.info.genre

    @property
    def description(self) -> str:
        return self.info.description

    @property
    def url(self) -> str:
        return self.info.url

    @property
    def bitrate(self) -> int:
        return self.info.bitrate

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int) -> bytes:
        """Read up to ``size`` audio bytes; b'' signals end-of-stream.

        Raises:
            UnexpectedEOF: The stream ended inside a metadata frame
            TransportError: The underlying transport failed
        """
        if size <= 0 or self._closed:
            return b''

        if self.pos >= self.metaint:
            if not self._consume_metadata_frame():
                return b''
            self.pos = 0

        data = self._source.read(min(size, self.metaint - self.pos))
        self.pos += len(data)
        return data

    def _read_exact(self, size: int) -> bytes:
        buf = bytearray()
        while len(buf) < size:
            chunk = self._source.read(size - len(buf))
            if not chunk:
                break
            buf.extend(chunk)
        return bytes(buf)

    def _consume_metadata_frame(self) -> bool:
        """Read and strip one metadata frame. Returns False when closed meanwhile."""
        length = self._read_exact(1)
        if not length:
            if self._closed:
                return False
            raise UnexpectedEOF("stream ended before metadata length byte")

        block_len = length[0] * METADATA_BLOCK_UNIT
        if block_len == 0:
            return True

        block = self._read_exact(block_len)
        if len(block) < block_len:
            if self._closed:
                return False
            raise UnexpectedEOF(
                f"stream ended inside metadata block ({len(block)}/{block_len} bytes)")

        metadata = parse_metadata(block)
        if metadata != self.metadata:
            self.metadata = metadata
            logger.debug(f"Metadata changed: {metadata.title!r}")
            if self.on_metadata is not None:
                self.on_metadata(metadata)
        return True

    def close(self) -> None:
        """Close the transport, unblocking any pending read. Idempotent."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        logger.info(f"Closing stream {self.info.name or self.info.url}")
        self._source.close()


def open_stream(url: str, on_metadata: Optional[MetadataCallback] = None,
                user_agent: str = DEFAULT_USER_AGENT, connect_timeout: float = 5.0,
                header_timeout: float = 10.0) -> IcyStream:
    """Resolve ``url`` (following .pls/.m3u playlists) and open an ICY session.

    Raises:
        ResolutionError: The playlist could not be resolved
        TransportError: The connection could not be established
        ProtocolError: The origin does not advertise a metadata interval
    """
    logger.info(f"Opening {url}")
    source = HttpSource(user_agent, connect_timeout=connect_timeout,
                        header_timeout=header_timeout)
    try:
        headers = source.open(url)
        info = stream_info_from_headers(headers)
    except BaseException:
        try:
            source.close()
        except TransportError as e:
            logger.warning(f"Error releasing connection after failed open: {e}")
        raise

    logger.info(f"Connected to '{info.name}' ({info.genre}, {info.bitrate} kbps, "
                f"metaint={info.metaint})")
    return IcyStream(source, info, on_metadata=on_metadata)
