"""ICY/Shoutcast stream access: playlist resolution, demuxing, metadata."""

from .metadata import parse_metadata
from .playlist import parse_pls, parse_m3u, extract_stream_url, resolve_stream_url
from .publisher import MetadataPublisher
from .stream import IcyStream, open_stream, stream_info_from_headers
from .transport import HttpSource

__all__ = [
    'parse_metadata',
    'parse_pls',
    'parse_m3u',
    'extract_stream_url',
    'resolve_stream_url',
    'MetadataPublisher',
    'IcyStream',
    'open_stream',
    'stream_info_from_headers',
    'HttpSource',
]
