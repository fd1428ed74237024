"""Resolution of .pls / .m3u playlist URLs to the stream they point at."""

import asyncio
import logging
from typing import Mapping

import aiohttp

from ..errors import ResolutionError

logger = logging.getLogger(__name__)

# Playlists are tiny; a live stream fetched without icy-metadata never ends.
MAX_PLAYLIST_BYTES = 64 * 1024

PLS_CONTENT_TYPES = ("audio/x-scpls", "application/pls+xml")
M3U_CONTENT_TYPES = ("audio/mpegurl", "audio/x-mpegurl", "application/vnd.apple.mpegurl",
                     "application/x-mpegurl")
AUDIO_CONTENT_TYPES = ("audio/", "application/ogg")


def _is_http_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def parse_pls(content: str) -> str:
    """Return the first ``FileN=`` entry of a PLS playlist."""
    for line in content.splitlines():
        line = line.strip()
        if line.lower().startswith("file") and "=" in line:
            url = line.split("=", 1)[1].strip()
            if url:
                return url

    raise ResolutionError("no stream URL found in PLS playlist")


def parse_m3u(content: str) -> str:
    """Return the first absolute HTTP(S) entry of an M3U playlist."""
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if _is_http_url(line):
            return line

    raise ResolutionError("no stream URL found in M3U playlist")


def is_pls(url: str, content_type: str, content: str) -> bool:
    content_type = content_type.lower()
    return (any(t in content_type for t in PLS_CONTENT_TYPES)
            or url.lower().endswith(".pls")
            or "[playlist]" in content.lower()
            or "File1=" in content)


def is_m3u(url: str, content_type: str, content: str) -> bool:
    content_type = content_type.lower()
    path = url.lower()
    return (any(t in content_type for t in M3U_CONTENT_TYPES)
            or path.endswith(".m3u")
            or path.endswith(".m3u8")
            or "#EXTM3U" in content
            or _is_http_url(content.strip()))


def looks_like_audio(content_type: str, headers: Mapping[str, str]) -> bool:
    """True when the response is plainly an audio stream, not a playlist."""
    if any(key.lower().startswith("icy-") for key in headers):
        return True
    content_type = content_type.lower()
    if any(t in content_type for t in PLS_CONTENT_TYPES + M3U_CONTENT_TYPES):
        return False
    return any(content_type.startswith(t) for t in AUDIO_CONTENT_TYPES)


def extract_stream_url(url: str, content_type: str, body: bytes,
                       headers: Mapping[str, str]) -> str:
    """Classify a fetched response and return the stream URL it designates.

    Content type alone is not trusted: the body and the URL extension are
    sniffed as well, since many origins mislabel their playlists.
    """
    if "icy-metaint" in {key.lower() for key in headers}:
        return url

    content = body.decode("utf-8", errors="replace")

    if is_pls(url, content_type, content):
        try:
            return parse_pls(content)
        except ResolutionError as e:
            raise ResolutionError(f"failed to parse PLS playlist: {e}") from e
    if is_m3u(url, content_type, content):
        try:
            return parse_m3u(content)
        except ResolutionError as e:
            raise ResolutionError(f"failed to parse M3U playlist: {e}") from e
    if looks_like_audio(content_type, headers):
        return url

    raise ResolutionError(
        f"URL does not appear to be a stream or playlist (Content-Type: {content_type})")


def describe_error(error: BaseException) -> str:
    """Error text for log lines and wrapped errors; timeouts have an empty str()."""
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


async def _read_head(response: aiohttp.ClientResponse, limit: int, timeout: float) -> bytes:
    """Read up to ``limit`` body bytes, stopping early once ``timeout`` seconds pass.

    A live stream trickles in at its bitrate, so running out of time just ends
    the sniffing; whatever arrived is classified.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    data = bytearray()
    while len(data) < limit:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        try:
            chunk = await asyncio.wait_for(response.content.read(limit - len(data)), remaining)
        except asyncio.TimeoutError:
            logger.debug(f"Stopped sniffing {response.url} after {len(data)} bytes")
            break
        if not chunk:
            break
        data.extend(chunk)
    return bytes(data)


async def _get(session: aiohttp.ClientSession, url: str, **kwargs) -> aiohttp.ClientResponse:
    return await session.get(url, **kwargs)


async def resolve_stream_url(session: aiohttp.ClientSession, url: str,
                             user_agent: str, timeout: float = 10.0,
                             connect_timeout: float = 5.0) -> str:
    """Fetch ``url`` and return it, or the stream URL it designates if it is a playlist.

    Args:
        session: Client session to issue the request with
        url: Candidate playlist or stream URL
        user_agent: User-Agent header value
        timeout: Timeout for the response headers, and separately for sniffing the body
        connect_timeout: Timeout for establishing the connection

    Raises:
        ResolutionError: The response is unreadable or neither a stream nor a playlist
    """
    headers = {"accept": "*/*", "user-agent": user_agent}
    # No total timeout: the body of a direct stream never ends.
    client_timeout = aiohttp.ClientTimeout(total=None, sock_connect=connect_timeout)

    try:
        response = await asyncio.wait_for(
            _get(session, url, headers=headers, timeout=client_timeout), timeout)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        raise ResolutionError(f"failed to fetch URL {url}: {describe_error(e)}") from e

    try:
        if response.status >= 400:
            raise ResolutionError(f"failed to fetch {url}: HTTP {response.status}")
        if "icy-metaint" in response.headers:
            return url
        body = await _read_head(response, MAX_PLAYLIST_BYTES, timeout)
        content_type = response.headers.get("Content-Type", "")
        response_headers = dict(response.headers)
    except (aiohttp.ClientError, OSError) as e:
        raise ResolutionError(f"failed to read {url}: {describe_error(e)}") from e
    finally:
        response.close()

    stream_url = extract_stream_url(url, content_type, body, response_headers)
    if stream_url != url:
        logger.info(f"Resolved playlist {url} to stream URL: {stream_url}")
    return stream_url
