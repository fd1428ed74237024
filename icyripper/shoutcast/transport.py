"""Blocking HTTP byte source for long-running ICY streams.

The stream is read through aiohttp, driven by an event loop private to the
source. Reads are issued from the ripper's copy thread while ``close()`` may be
called from any thread; it cancels an in-flight read, which then reports
end-of-stream.
"""

import asyncio
import logging
import threading
from typing import Mapping, Optional

import aiohttp

from ..errors import TransportError
from .playlist import describe_error, resolve_stream_url

logger = logging.getLogger(__name__)


class HttpSource:
    """Audio byte source backed by a single streaming HTTP response."""

    def __init__(self, user_agent: str, connect_timeout: float = 5.0,
                 header_timeout: float = 10.0):
        """Initialize the source.

        Args:
            user_agent: User-Agent header value
            connect_timeout: Timeout for establishing the TCP connection
            header_timeout: Timeout for receiving the response headers
        """
        self.user_agent = user_agent
        self.connect_timeout = connect_timeout
        self.header_timeout = header_timeout
        self.url: Optional[str] = None

        self._loop = asyncio.new_event_loop()
        self._session: Optional[aiohttp.ClientSession] = None
        self._response: Optional[aiohttp.ClientResponse] = None

        self._lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self._released = False

    def open(self, url: str) -> Mapping[str, str]:
        """Resolve ``url`` and connect to the stream, returning the response headers."""
        return self._loop.run_until_complete(self._open(url))

    async def _open(self, url: str) -> Mapping[str, str]:
        # No total or read timeout: the body is read for as long as the stream lives.
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.connect_timeout,
                                        sock_read=None)
        self._session = aiohttp.ClientSession(timeout=timeout, auto_decompress=False)

        stream_url = await resolve_stream_url(self._session, url, self.user_agent,
                                              timeout=self.header_timeout,
                                              connect_timeout=self.connect_timeout)
        self.url = stream_url

        headers = {
            "accept": "*/*",
            "user-agent": self.user_agent,
            "icy-metadata": "1",
        }
        try:
            self._response = await asyncio.wait_for(
                self._connect(stream_url, headers), self.header_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise TransportError(f"failed to connect to {stream_url}: {describe_error(e)}") from e

        if self._response.status >= 400:
            raise TransportError(f"failed to connect to {stream_url}: HTTP {self._response.status}")

        for key, value in self._response.headers.items():
            logger.debug(f"HTTP header {key}: {value}")
        return self._response.headers

    async def _connect(self, url: str, headers: Mapping[str, str]) -> aiohttp.ClientResponse:
        return await self._session.get(url, headers=headers)

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; returns b'' at end-of-stream or after close."""
        with self._lock:
            if self._closed or self._response is None:
                return b''
            task = self._loop.create_task(self._response.content.read(size))
            self._task = task

        try:
            return self._loop.run_until_complete(task)
        except asyncio.CancelledError:
            return b''
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise TransportError(f"error reading stream: {describe_error(e)}") from e
        finally:
            with self._lock:
                self._task = None
                release = self._closed
            if release:
                try:
                    self._release()
                except TransportError as e:
                    logger.warning(f"{e}")

    def close(self) -> None:
        """Close the connection, unblocking a pending read. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            task = self._task

        if task is not None:
            # The copy thread owns the running loop and releases once its read returns.
            self._loop.call_soon_threadsafe(task.cancel)
            return
        self._release()

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            self._loop.run_until_complete(self._aclose())
        except (aiohttp.ClientError, OSError) as e:
            raise TransportError(f"error closing stream: {e}") from e
        finally:
            self._loop.close()

    async def _aclose(self) -> None:
        if self._response is not None:
            self._response.close()
        if self._session is not None:
            await self._session.close()
