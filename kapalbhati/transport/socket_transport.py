"""WebSocket transport to the breath analysis service."""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Set

import aiohttp

from ..errors import TransportError
from ..models.audio import EncodedFrame
from ..models.state import ConnectionState

logger = logging.getLogger(__name__)


class SocketTransport:
    """One WebSocket connection carrying a handshake and then binary PCM frames.

    The handshake is sent once, right after the connection opens and before the
    transport reports Streaming. Frames passed to ``send`` while the transport
    is not Streaming are dropped: there is no send queue and no retry.
    """

    def __init__(self,
                 on_open: Optional[Callable[[], None]] = None,
                 on_message: Optional[Callable[[str], None]] = None,
                 on_close: Optional[Callable[[], None]] = None,
                 on_error: Optional[Callable[[TransportError], None]] = None):
        """Initialize transport.

        Args:
            on_open: Called after the handshake has been sent
            on_message: Called with every inbound text payload
            on_close: Called when the service closes the connection
            on_error: Called when the connection fails
        """
        self.on_open = on_open
        self.on_message = on_message
        self.on_close = on_close
        self.on_error = on_error

        self.state = ConnectionState.IDLE
        self.url: Optional[str] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._connect_task: Optional[asyncio.Future] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending_sends: Set[asyncio.Future] = set()

        self.handshakes_sent = 0
        self.frames_sent = 0
        self.frames_discarded = 0

    @property
    def is_open(self) -> bool:
        return (self.state is ConnectionState.STREAMING
                and self._ws is not None
                and not self._ws.closed)

    async def open(self, url: str, handshake: Dict[str, Any]) -> bool:
        """Connect to ``url`` and send ``handshake`` as the first message.

        Args:
            url: WebSocket address of the analysis service
            handshake: JSON-serialisable session parameters

        Returns:
            True if the transport reached Streaming, False otherwise
        """
        if self.state is not ConnectionState.IDLE:
            raise RuntimeError(f"Transport cannot be opened from state {self.state.value}")

        self.url = url
        self.state = ConnectionState.CONNECTING
        session = aiohttp.ClientSession()
        self._session = session
        logger.info(f"Connecting to analysis service at {url}")

        connect = asyncio.ensure_future(session.ws_connect(url, heartbeat=None))
        self._connect_task = connect
        try:
            ws = await connect
        except asyncio.CancelledError:
            if self._session is not session:
                logger.info("Transport closed while connecting")
                return False
            await self.close()
            raise
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            if self._session is not session:
                logger.info("Transport closed while connecting")
                return False
            await self._fail(TransportError(f"WebSocket connection failed: {e}"))
            return False
        finally:
            self._connect_task = None

        if self._session is not session:
            # close() ran while the connection was being established
            await ws.close()
            return False

        self._ws = ws
        try:
            await ws.send_str(json.dumps(handshake))
        except (aiohttp.ClientError, ConnectionError) as e:
            if self._ws is not ws:
                return False
            await self._fail(TransportError(f"Failed to send handshake: {e}"))
            return False

        if self._ws is not ws:
            # close() ran while the handshake was being sent
            return False
        self.handshakes_sent += 1
        self.state = ConnectionState.STREAMING
        logger.info(f"WebSocket connected, sent session parameters for {handshake.get('uid')}")
        logger.debug(f"Handshake payload: {handshake}")

        self._reader_task = asyncio.create_task(self._read_loop(ws))
        if self.on_open:
            self.on_open()
        return True

    def send(self, frame: EncodedFrame) -> bool:
        """Send one PCM frame if the transport is Streaming.

        Returns:
            True if the frame was handed to the socket, False if it was dropped
        """
        if not self.is_open:
            self.frames_discarded += 1
            return False

        task = asyncio.ensure_future(self._ws.send_bytes(frame.to_bytes()))
        self._pending_sends.add(task)
        task.add_done_callback(self._on_send_done)
        self.frames_sent += 1
        logger.debug(f"Sent audio frame {frame.sequence_number}, length: {len(frame)}")
        return True

    async def close(self) -> None:
        """Close the connection. Safe from any state; always ends Disconnected."""
        released = await self._release()
        self.state = ConnectionState.DISCONNECTED
        if released:
            logger.info("WebSocket closed")

    def _on_send_done(self, task: asyncio.Future) -> None:
        self._pending_sends.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Failed to send audio frame: {task.exception()}")

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        error: Optional[BaseException] = None
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                if self.on_message:
                    try:
                        self.on_message(msg.data)
                    except Exception as e:
                        logger.error(f"Error handling inbound message: {e}", exc_info=True)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                error = ws.exception()
                break
            else:
                logger.debug(f"Ignoring inbound {msg.type.name} message")

        if self._ws is not ws:
            # Closed locally
            return
        if error is not None:
            await self._fail(TransportError(f"WebSocket error: {error}"))
            return

        logger.info(f"WebSocket closed by service, code: {ws.close_code}")
        await self._release()
        self.state = ConnectionState.DISCONNECTED
        if self.on_close:
            self.on_close()

    async def _fail(self, error: TransportError) -> None:
        logger.error(str(error))
        await self._release()
        self.state = ConnectionState.ERROR
        if self.on_error:
            self.on_error(error)

    async def _release(self) -> bool:
        """Drop and close the socket and HTTP session exactly once."""
        ws, self._ws = self._ws, None
        session, self._session = self._session, None
        reader, self._reader_task = self._reader_task, None
        if ws is None and session is None:
            return False

        if self._connect_task is not None:
            self._connect_task.cancel()

        for task in list(self._pending_sends):
            task.cancel()
        self._pending_sends.clear()

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        if ws is not None:
            await ws.close()
        if session is not None:
            await session.close()
        return True
