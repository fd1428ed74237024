"""Pytest configuration and fixtures for icyripper tests."""

import pytest
import asyncio
import tempfile
import threading
import logging
from typing import Iterable, List, Optional

from aiohttp import web


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MP3_SYNC = b'\xff\xfb'


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without network or threads")
    config.addinivalue_line("markers", "integration: tests spanning threads, disk and HTTP")


def icy_frame(title: Optional[str]) -> bytes:
    """Encode one metadata frame; None yields the empty frame (length byte 0)."""
    if title is None:
        return b'\x00'
    text = f"StreamTitle='{title}';".encode('utf-8')
    blocks = -(-len(text) // 16)
    return bytes([blocks]) + text.ljust(blocks * 16, b'\x00')


def build_icy_payload(metaint: int, audio: bytes, titles: Iterable[Optional[str]]) -> bytes:
    """Interleave ``audio`` with one metadata frame after every ``metaint`` bytes.

    The i-th frame announces titles[i]; frames beyond the list are empty.
    A trailing partial block is appended without a frame.
    """
    titles = list(titles)
    out = bytearray()
    for index, start in enumerate(range(0, len(audio), metaint)):
        block = audio[start:start + metaint]
        out.extend(block)
        if len(block) == metaint:
            out.extend(icy_frame(titles[index] if index < len(titles) else None))
    return bytes(out)


def audio_segment(size: int, seed: int = 0, sync: bool = True) -> bytes:
    """Deterministic audio-like bytes that never contain 0xFF except an optional leading sync word."""
    body = bytes((seed * 31 + i * 7) % 0x80 for i in range(size))
    if sync and size >= 2:
        return MP3_SYNC + body[2:]
    return body


class ScriptedSource:
    """In-memory byte source that serves ``data`` in small reads.

    With ``hold_open`` it behaves like a live stream: once the data is used
    up, reads block until ``close()`` is called. With ``fail_with`` the read
    after the data is used up raises that error instead.
    """

    def __init__(self, data: bytes, max_read: int = 4096, hold_open: bool = False,
                 fail_with: Optional[Exception] = None):
        self.data = data
        self.max_read = max_read
        self.hold_open = hold_open
        self.fail_with = fail_with
        self.offset = 0
        self.read_sizes: List[int] = []
        self.exhausted = threading.Event()
        self.closed = threading.Event()
        self.close_calls = 0

    def read(self, size: int) -> bytes:
        if self.closed.is_set():
            return b''
        self.read_sizes.append(size)
        if self.offset >= len(self.data):
            self.exhausted.set()
            if self.fail_with is not None:
                raise self.fail_with
            if self.hold_open:
                self.closed.wait()
            return b''
        n = min(size, self.max_read, len(self.data) - self.offset)
        chunk = self.data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def close(self) -> None:
        self.close_calls += 1
        self.closed.set()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def icy_payload():
    """Builder for ICY byte streams."""
    return build_icy_payload


@pytest.fixture
def metadata_frame():
    """Encoder for single metadata frames."""
    return icy_frame


@pytest.fixture
def make_audio():
    """Generator of deterministic audio-like bytes."""
    return audio_segment


@pytest.fixture
def scripted_source():
    """Factory for in-memory byte sources."""
    return ScriptedSource


STREAM_METAINT = 16
STREAM_AUDIO = bytes(range(0x20, 0x60))  # 64 bytes, four metadata intervals
STREAM_TITLES = ["One", "One", "Two", None]


class LocalIcyServer:
    """aiohttp web server on a background thread serving canned ICY responses."""

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.stopping = False
        self.port: Optional[int] = None
        self.audio = STREAM_AUDIO
        self.titles = STREAM_TITLES
        self.payload = build_icy_payload(STREAM_METAINT, STREAM_AUDIO, STREAM_TITLES)
        self._thread: Optional[threading.Thread] = None

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def icy_headers(self) -> dict:
        return {
            "Content-Type": "audio/mpeg",
            "icy-name": "Test FM",
            "icy-genre": "Testing",
            "icy-description": "Synthetic stream",
            "icy-url": "http://example.com",
            "icy-br": "128",
            "icy-metaint": str(STREAM_METAINT),
        }

    async def _stream(self, request):
        return web.Response(body=self.payload, headers=self.icy_headers())

    async def _endless(self, request):
        response = web.StreamResponse(headers=self.icy_headers())
        await response.prepare(request)
        await response.write(build_icy_payload(STREAM_METAINT, STREAM_AUDIO[:16], ["Live"]))
        for _ in range(100):
            if self.stopping:
                break
            await asyncio.sleep(0.05)
        return response

    async def _no_metadata(self, request):
        return web.Response(body=STREAM_AUDIO, headers={"Content-Type": "audio/mpeg",
                                                         "icy-name": "Plain FM"})

    async def _pls(self, request):
        body = f"[playlist]\nNumberOfEntries=1\nFile1={self.url('/stream')}\nTitle1=Test\n"
        return web.Response(text=body, content_type="audio/x-scpls")

    async def _m3u(self, request):
        body = f"#EXTM3U\n#EXTINF:-1,Test FM\n{self.url('/stream')}\n"
        return web.Response(text=body, content_type="audio/mpegurl")

    async def _mislabeled(self, request):
        body = f"[playlist]\nFile1={self.url('/stream')}\n"
        return web.Response(text=body, content_type="text/plain")

    async def _html(self, request):
        return web.Response(text="<html><body>Not a stream</body></html>",
                            content_type="text/html")

    async def _empty_pls(self, request):
        return web.Response(text="[playlist]\nNumberOfEntries=0\n", content_type="audio/x-scpls")

    async def _slow(self, request):
        # Like a low-bitrate live stream: the ICY interval only on request.
        headers = self.icy_headers()
        wants_metadata = request.headers.get("icy-metadata") == "1"
        if not wants_metadata:
            del headers["icy-metaint"]
        response = web.StreamResponse(headers=headers)
        await response.prepare(request)
        if wants_metadata:
            await response.write(self.payload)
            return response
        try:
            for _ in range(100):
                if self.stopping:
                    break
                await response.write(STREAM_AUDIO)
                await asyncio.sleep(0.05)
        except ConnectionResetError:
            pass
        return response

    async def _hang(self, request):
        for _ in range(100):
            if self.stopping:
                break
            await asyncio.sleep(0.05)
        return web.Response(body=self.payload, headers=self.icy_headers())

    def _make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/stream", self._stream)
        app.router.add_get("/endless", self._endless)
        app.router.add_get("/nometa", self._no_metadata)
        app.router.add_get("/radio.pls", self._pls)
        app.router.add_get("/radio.m3u", self._m3u)
        app.router.add_get("/listen", self._mislabeled)
        app.router.add_get("/index.html", self._html)
        app.router.add_get("/empty.pls", self._empty_pls)
        app.router.add_get("/slow", self._slow)
        app.router.add_get("/hang", self._hang)
        return app

    def start(self) -> None:
        ready = threading.Event()

        def serve():
            asyncio.set_event_loop(self.loop)
            runner = web.AppRunner(self._make_app())
            self.loop.run_until_complete(runner.setup())
            site = web.TCPSite(runner, "127.0.0.1", 0)
            self.loop.run_until_complete(site.start())
            self.port = runner.addresses[0][1]
            ready.set()
            self.loop.run_forever()
            self.loop.run_until_complete(runner.cleanup())
            self.loop.close()

        self._thread = threading.Thread(target=serve, daemon=True, name="LocalIcyServer")
        self._thread.start()
        if not ready.wait(5.0):
            raise RuntimeError("local ICY server did not start")

    def stop(self) -> None:
        self.stopping = True
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(10.0)


@pytest.fixture
def icy_server():
    """Local HTTP server with ICY streams and playlists."""
    server = LocalIcyServer()
    server.start()
    yield server
    server.stop()
