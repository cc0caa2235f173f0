"""Streaming session controller: one capture graph and one transport per session."""

import asyncio
import logging
import time
from functools import partial
from typing import Callable, Optional

from ..audio.capture import AudioCaptureEngine, CaptureHandle
from ..audio.encoder import PCMEncoder
from ..config import KapalbhatiConfig
from ..errors import CaptureError, TransportError
from ..models.audio import AudioFrame
from ..models.events import SessionStats, StatusEvent
from ..models.session import SessionParameters
from ..models.state import ConnectionState, DisplayStatus
from ..transport.receiver import ResultsReceiver
from ..transport.socket_transport import SocketTransport
from .publisher import SessionPublisher

logger = logging.getLogger(__name__)

CAPTURE_ERROR_MESSAGE = "Microphone access denied or not supported"
TRANSPORT_ERROR_MESSAGE = "WebSocket error"


class StreamSessionController:
    """Drives a session through Idle, Connecting, Streaming and teardown.

    Resources are acquired in a fixed order (microphone first, then the
    transport) and released in the reverse order by ``stop()``. A transport
    close or error ends streaming but leaves the microphone held until
    ``stop()`` is called. Nothing is retried.

    All methods and callbacks run on a single asyncio event loop.
    """

    def __init__(self,
                 config: KapalbhatiConfig,
                 capture_engine: Optional[AudioCaptureEngine] = None,
                 encoder: Optional[PCMEncoder] = None,
                 receiver: Optional[ResultsReceiver] = None,
                 publisher: Optional[SessionPublisher] = None,
                 transport_factory: Callable[[], SocketTransport] = SocketTransport):
        self.config = config
        self.capture = capture_engine or AudioCaptureEngine()
        self.encoder = encoder or PCMEncoder()
        self.receiver = receiver or ResultsReceiver()
        self.publisher = publisher or SessionPublisher()
        self.transport_factory = transport_factory

        self.state = ConnectionState.IDLE
        self.params: Optional[SessionParameters] = None
        self.capture_handle: Optional[CaptureHandle] = None
        self.transport: Optional[SocketTransport] = None
        self.last_error: Optional[str] = None
        self.stats = SessionStats()
        self._started_at: Optional[float] = None
        self._teardown_done: Optional[asyncio.Event] = None

    @property
    def holds_resources(self) -> bool:
        return self.capture.is_capturing or self.transport is not None

    @property
    def metrics(self):
        return self.receiver.latest

    async def start(self) -> ConnectionState:
        """Acquire the microphone, then connect to the analysis service.

        Returns:
            The state after the connection attempt: Streaming, Error, or
            Disconnected if ``stop()`` ran while connecting

        Raises:
            PermissionDenied, DeviceUnavailable: The microphone could not be
                acquired. The controller stays Idle and holds nothing.
        """
        if self.holds_resources or self.state in (ConnectionState.CONNECTING,
                                                  ConnectionState.STREAMING,
                                                  ConnectionState.STOPPING):
            logger.warning("Session already in progress")
            return self.state

        self.state = ConnectionState.IDLE
        self.last_error = None
        self.params = SessionParameters.create(**self.config.get_session_settings())
        self.stats = SessionStats(session_uid=self.params.uid)
        self.receiver.reset()
        self.publisher.publish_metrics(self.receiver.latest)
        logger.info(f"Starting session {self.params.uid}")

        constraints = self.config.get_capture_constraints()
        try:
            self.capture_handle = self.capture.acquire(constraints, self._on_frame)
        except CaptureError:
            self.last_error = CAPTURE_ERROR_MESSAGE
            self._publish_status(DisplayStatus.ERROR)
            raise

        self._started_at = time.monotonic()
        if constraints.block_size != self.params.chunk_size:
            logger.warning(f"Capture block size {constraints.block_size} differs from "
                           f"handshake chunk_size {self.params.chunk_size}")

        transport = self.transport_factory()
        transport.on_open = partial(self._on_transport_open, transport)
        transport.on_message = partial(self._on_transport_message, transport)
        transport.on_close = partial(self._on_transport_closed, transport)
        transport.on_error = partial(self._on_transport_error, transport)
        self.transport = transport
        self._set_state(ConnectionState.CONNECTING, DisplayStatus.CONNECTING)

        await transport.open(self.config.get_server_url(), self.params.to_handshake())
        return self.state

    async def stop(self) -> ConnectionState:
        """Release everything the session holds, in reverse acquisition order.

        Safe to call from any state and any number of times. A call made while
        another stop is tearing down waits for that teardown to finish.
        """
        if self.state is ConnectionState.STOPPING:
            await self._teardown_done.wait()
            return self.state
        if not self.holds_resources and self.state in (ConnectionState.IDLE,
                                                       ConnectionState.DISCONNECTED):
            return self.state

        logger.info("Stopping session")
        self.state = ConnectionState.STOPPING
        self._teardown_done = asyncio.Event()
        transport, self.transport = self.transport, None
        try:
            self.capture.release()
            self.capture_handle = None
        finally:
            try:
                if transport is not None:
                    await transport.close()
            finally:
                self._update_duration()
                self._started_at = None
                self._set_state(ConnectionState.DISCONNECTED, DisplayStatus.STOPPED)
                logger.info(f"Session stopped: {self.stats}")
                self._teardown_done.set()
        return self.state

    async def toggle(self) -> ConnectionState:
        """Start a session if none is running, otherwise stop it."""
        if self.holds_resources:
            return await self.stop()
        try:
            return await self.start()
        except CaptureError as e:
            logger.error(f"Could not start session: {e}")
            return self.state

    def get_session_stats(self) -> SessionStats:
        self._update_duration()
        return self.stats

    def _on_frame(self, frame: AudioFrame) -> None:
        self.stats.frames_captured += 1
        transport = self.transport
        if self.state is not ConnectionState.STREAMING or transport is None or not transport.is_open:
            self.stats.frames_discarded += 1
            return
        if transport.send(self.encoder.encode(frame)):
            self.stats.frames_sent += 1
        else:
            self.stats.frames_discarded += 1

    def _on_transport_open(self, transport: SocketTransport) -> None:
        if transport is not self.transport:
            return
        self._set_state(ConnectionState.STREAMING, DisplayStatus.CONNECTED)
        self._publish_status(DisplayStatus.RECORDING)

    def _on_transport_message(self, transport: SocketTransport, text: str) -> None:
        if transport is not self.transport:
            return
        rejected = self.receiver.messages_rejected
        metrics = self.receiver.receive(text)
        self.stats.messages_received += 1
        if self.receiver.messages_rejected != rejected:
            self.stats.messages_rejected += 1
            return
        self.publisher.publish_metrics(metrics)

    def _on_transport_closed(self, transport: SocketTransport) -> None:
        if transport is not self.transport:
            return
        self.transport = None
        self._set_state(ConnectionState.DISCONNECTED, DisplayStatus.DISCONNECTED)

    def _on_transport_error(self, transport: SocketTransport, error: TransportError) -> None:
        if transport is not self.transport:
            return
        self.transport = None
        self.last_error = TRANSPORT_ERROR_MESSAGE
        self._set_state(ConnectionState.ERROR, DisplayStatus.ERROR)

    def _set_state(self, state: ConnectionState, status: DisplayStatus) -> None:
        logger.info(f"Session state: {self.state.value} -> {state.value}")
        self.state = state
        self._publish_status(status)

    def _publish_status(self, status: DisplayStatus) -> None:
        self.publisher.publish_status(StatusEvent(
            status=status,
            state=self.state,
            session_uid=self.params.uid if self.params else None,
            error=self.last_error,
            holds_resources=self.holds_resources,
        ))

    def _update_duration(self) -> None:
        if self._started_at is not None:
            self.stats.duration_seconds = time.monotonic() - self._started_at

    async def __aenter__(self) -> "StreamSessionController":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
