"""Pytest configuration and fixtures for Kapalbhati tracker tests."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import Mock, patch

import numpy as np
import pytest
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer
from blinker import ANY, signal

from kapalbhati.config import KapalbhatiConfig
from kapalbhati.errors import TransportError
from kapalbhati.models.audio import AudioFrame, CaptureConstraints
from kapalbhati.models.state import ConnectionState
from kapalbhati.services.publisher import METRICS_TOPIC, STATUS_TOPIC


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")
    config.addinivalue_line("markers", "integration: tests against a local WebSocket server")
    config.addinivalue_line("markers", "hardware: tests that need a real microphone")


@pytest.fixture(autouse=True)
def reset_signals():
    """Drop status and metrics receivers left connected by a test."""
    yield
    for name in (STATUS_TOPIC, METRICS_TOPIC):
        topic = signal(name)
        for receiver in list(topic.receivers_for(ANY)):
            topic.disconnect(receiver)


@pytest.fixture
def sample_audio_frame():
    """Generate a 4096-sample float frame (440 Hz sine at half scale)."""
    sample_rate = 16000
    t = np.arange(4096) / sample_rate
    samples = (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
    return AudioFrame(samples=samples, timestamp=0.0, sequence_number=1)


@pytest.fixture
def mock_sounddevice():
    """Mock sounddevice for testing without actual audio hardware."""
    devices = {None: {"index": 0, "name": "Test Microphone"}, 2: {"index": 2, "name": "USB Microphone"}}

    def query_devices(device=None, kind=None):
        if device not in devices:
            raise ValueError(f"No input device matching {device!r}")
        return devices[device]

    with patch("sounddevice.InputStream") as mock_stream_class, \
            patch("sounddevice.query_devices", side_effect=query_devices) as mock_query:
        mock_stream = Mock()

        mock_stream.start.return_value = None
        mock_stream.stop.return_value = None
        mock_stream.close.return_value = None

        mock_stream_class.return_value = mock_stream

        yield {
            "class": mock_stream_class,
            "stream": mock_stream,
            "query_devices": mock_query,
        }


@pytest.fixture
def test_config(tmp_path):
    """Configuration pointing at a local server with a small block size."""
    config_file = tmp_path / "kapalbhati.yaml"
    config_file.write_text(
        "server:\n"
        "  url: ws://127.0.0.1:1/\n"
        "audio:\n"
        "  block_size: 4096\n"
        "logging:\n"
        "  file_path: logs/test.log\n"
    )
    return KapalbhatiConfig(str(config_file))


class FakeCaptureEngine:
    """Stands in for AudioCaptureEngine; frames are emitted by the test."""

    def __init__(self, teardown_log: Optional[List[str]] = None, fail_with: Optional[Exception] = None):
        self.teardown_log = teardown_log if teardown_log is not None else []
        self.fail_with = fail_with
        self.on_frame = None
        self.constraints: Optional[CaptureConstraints] = None
        self.acquire_calls = 0
        self.release_calls = 0
        self.sequence = 0

    @property
    def is_capturing(self) -> bool:
        return self.on_frame is not None

    def acquire(self, constraints, on_frame):
        self.acquire_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        self.constraints = constraints
        self.on_frame = on_frame
        return Mock(name="CaptureHandle")

    def release(self) -> None:
        self.release_calls += 1
        if self.on_frame is None:
            return
        self.on_frame = None
        self.teardown_log.extend(["graph", "source", "context"])

    def emit(self, samples=(0.0, 0.25, -0.25, 1.0)) -> None:
        self.sequence += 1
        self.on_frame(AudioFrame(samples=np.asarray(samples, dtype=np.float32),
                                 timestamp=0.0, sequence_number=self.sequence))


class FakeTransport:
    """Stands in for SocketTransport; the test controls when it opens."""

    def __init__(self, teardown_log: List[str], outcome: str = "open", gate: Optional[asyncio.Event] = None):
        self.teardown_log = teardown_log
        self.outcome = outcome
        self.gate = gate
        self.on_open = self.on_message = self.on_close = self.on_error = None
        self.state = ConnectionState.IDLE
        self.url: Optional[str] = None
        self.handshakes: List[Dict[str, Any]] = []
        self.sent = []
        self.close_calls = 0
        self.close_gate: Optional[asyncio.Event] = None

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.STREAMING

    async def open(self, url, handshake):
        self.url = url
        self.state = ConnectionState.CONNECTING
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.state is not ConnectionState.CONNECTING:
            return False
        if self.outcome == "error":
            self.state = ConnectionState.ERROR
            self.on_error(TransportError("connection refused"))
            return False
        self.handshakes.append(handshake)
        self.state = ConnectionState.STREAMING
        self.on_open()
        return True

    def send(self, frame) -> bool:
        if not self.is_open:
            return False
        self.sent.append(frame)
        return True

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_gate is not None:
            await self.close_gate.wait()
        if self.state is not ConnectionState.DISCONNECTED:
            self.teardown_log.append("transport")
        self.state = ConnectionState.DISCONNECTED

    def deliver(self, text: str) -> None:
        self.on_message(text)

    def remote_close(self) -> None:
        self.state = ConnectionState.DISCONNECTED
        self.on_close()


@pytest.fixture
def teardown_log():
    return []


@pytest.fixture
def fake_capture(teardown_log):
    return FakeCaptureEngine(teardown_log)


@pytest.fixture
def make_capture(teardown_log):
    """Factory for FakeCaptureEngines, e.g. ``make_capture(fail_with=PermissionDenied("denied"))``."""
    def factory(**kwargs):
        return FakeCaptureEngine(teardown_log, **kwargs)
    return factory


@pytest.fixture
def transport_factory(teardown_log):
    """Factory producing FakeTransports; created instances are kept in ``.created``."""

    class Factory:
        def __init__(self):
            self.created: List[FakeTransport] = []
            self.outcome = "open"
            self.gate: Optional[asyncio.Event] = None

        def __call__(self) -> FakeTransport:
            transport = FakeTransport(teardown_log, self.outcome, self.gate)
            self.created.append(transport)
            return transport

    return Factory()


class FakeAnalysisService:
    """Local WebSocket server recording what a client sends.

    Every received message is stored as ``(kind, payload)`` where kind is
    "text" or "binary". Replies queued in ``replies`` are sent after the
    first text message.
    """

    def __init__(self, replies: Optional[List[str]] = None, close_after_handshake: bool = False):
        self.replies = replies or []
        self.close_after_handshake = close_after_handshake
        self.received: List[Tuple[str, Any]] = []
        self.connections = 0
        self.server: Optional[TestServer] = None
        self.first_binary = asyncio.Event()

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.server.port}/"

    @property
    def handshakes(self) -> List[Dict[str, Any]]:
        return [json.loads(payload) for kind, payload in self.received if kind == "text"]

    @property
    def frames(self) -> List[bytes]:
        return [payload for kind, payload in self.received if kind == "binary"]

    async def _handle(self, request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.connections += 1
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                self.received.append(("text", msg.data))
                if self.close_after_handshake:
                    await ws.close()
                    break
                for reply in self.replies:
                    await ws.send_str(reply)
            elif msg.type == WSMsgType.BINARY:
                self.received.append(("binary", msg.data))
                self.first_binary.set()
        return ws

    async def start(self) -> "FakeAnalysisService":
        app = web.Application()
        app.router.add_get("/", self._handle)
        self.server = TestServer(app, host="127.0.0.1")
        await self.server.start_server()
        return self

    async def close(self) -> None:
        await self.server.close()

    async def __aenter__(self) -> "FakeAnalysisService":
        return await self.start()

    async def __aexit__(self, *args) -> None:
        await self.close()


@pytest.fixture
def analysis_service():
    """Factory for FakeAnalysisService; use as ``async with analysis_service(...)``."""
    return FakeAnalysisService


@pytest.fixture
def eventually():
    """Await until ``predicate()`` is true or fail after ``timeout`` seconds."""
    async def wait(predicate, timeout: float = 3.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.01)
    return wait


@pytest.fixture
def unused_port():
    """A local TCP port with nothing listening on it."""
    import socket
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
