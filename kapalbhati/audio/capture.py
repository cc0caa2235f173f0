"""Microphone capture engine bridging PortAudio callbacks onto the event loop."""

import asyncio
import errno
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import numpy as np
import sounddevice as sd

from ..errors import CaptureError, DeviceUnavailable, PermissionDenied
from ..models.audio import AudioFrame, CaptureConstraints, CaptureStats

logger = logging.getLogger(__name__)

FrameCallback = Callable[[AudioFrame], None]


@dataclass(frozen=True)
class CaptureHandle:
    """Description of an acquired microphone."""
    device_name: str
    sample_rate: int
    channels: int
    block_size: int


def classify_capture_error(error: Exception) -> CaptureError:
    """Map a sounddevice/PortAudio failure onto PermissionDenied or DeviceUnavailable."""
    text = " ".join(str(arg) for arg in getattr(error, "args", ())).lower() or str(error).lower()
    if getattr(error, "errno", None) in (errno.EACCES, errno.EPERM) or "permission" in text or "denied" in text:
        return PermissionDenied(f"Microphone access denied: {error}")
    return DeviceUnavailable(f"Microphone not available: {error}")


class AudioCaptureEngine:
    """Owns the sounddevice input stream and the frame bridge.

    PortAudio invokes the stream callback on its own thread at the hardware's
    cadence. The callback only copies the block and posts it to the event loop,
    so ``on_frame`` always runs on the loop that called ``acquire``.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._stream: Optional[sd.InputStream] = None
        self._on_frame: Optional[FrameCallback] = None
        self._constraints: Optional[CaptureConstraints] = None

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_frames = 0

    @property
    def is_capturing(self) -> bool:
        return self._stream is not None

    def acquire(self, constraints: CaptureConstraints, on_frame: FrameCallback) -> CaptureHandle:
        """Open the microphone and start delivering frames to ``on_frame``.

        Args:
            constraints: Requested sample rate, channel count and block size
            on_frame: Called on the event loop with every captured AudioFrame

        Returns:
            CaptureHandle describing the opened device

        Raises:
            PermissionDenied: The OS refused microphone access
            DeviceUnavailable: No input device, or it rejected the constraints
        """
        if self.is_capturing:
            raise RuntimeError("Capture already acquired; release it first")
        if constraints.channels != 1:
            raise DeviceUnavailable(f"Only mono capture is supported, got {constraints.channels} channels")
        if constraints.echo_cancellation or constraints.noise_suppression:
            raise DeviceUnavailable("Echo cancellation and noise suppression are not available; "
                                    "the analysis service expects the raw signal")

        loop = self._loop or asyncio.get_running_loop()
        stream = None
        try:
            device_info = sd.query_devices(constraints.input_device_index, kind="input")

            stream = sd.InputStream(
                device=constraints.input_device_index,
                samplerate=constraints.sample_rate,
                channels=constraints.channels,
                dtype="float32",
                blocksize=constraints.block_size,
                callback=self._audio_callback,
            )
            self._loop = loop
            self._on_frame = on_frame
            stream.start()
        except (sd.PortAudioError, OSError, ValueError) as e:
            self._on_frame = None
            if stream is not None:
                stream.close(ignore_errors=True)
            error = classify_capture_error(e)
            logger.error(f"Failed to acquire microphone: {error}")
            raise error from e

        self._stream = stream
        self._constraints = constraints
        self.start_time = datetime.now()
        self.total_frames = 0

        handle = CaptureHandle(
            device_name=str(device_info.get("name", "unknown")),
            sample_rate=constraints.sample_rate,
            channels=constraints.channels,
            block_size=constraints.block_size,
        )
        logger.info(f"Audio capture started on '{handle.device_name}': "
                    f"{handle.sample_rate}Hz, {handle.block_size} samples/block")
        return handle

    def release(self) -> None:
        """Disconnect the frame bridge, then stop and close the input stream.

        Safe to call any number of times.
        """
        if not self.is_capturing:
            return

        logger.info(f"Releasing audio capture. Total frames: {self.total_frames}")
        self._on_frame = None

        stream, self._stream = self._stream, None
        try:
            stream.stop()
        except sd.PortAudioError as e:
            logger.warning(f"Error stopping capture stream: {e}")
        try:
            stream.close()
        except sd.PortAudioError as e:
            logger.warning(f"Error closing capture stream: {e}")

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status: sd.CallbackFlags) -> None:
        """sounddevice callback; runs on the PortAudio thread."""
        if self._on_frame is None:
            raise sd.CallbackStop
        if status:
            logger.debug(f"Audio stream status: {status}")

        samples = indata[:, 0].copy()
        try:
            self._loop.call_soon_threadsafe(self._deliver_frame, samples, time.time())
        except RuntimeError:
            # Event loop already closed
            raise sd.CallbackStop

    def _deliver_frame(self, samples: np.ndarray, timestamp: float) -> None:
        on_frame = self._on_frame
        if on_frame is None:
            return
        self.total_frames += 1
        on_frame(AudioFrame(samples=samples, timestamp=timestamp, sequence_number=self.total_frames))

    def get_capture_stats(self) -> CaptureStats:
        """Get current capture statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        constraints = self._constraints or CaptureConstraints()
        return CaptureStats(
            is_capturing=self.is_capturing,
            duration_seconds=duration,
            sample_rate=constraints.sample_rate,
            block_size=constraints.block_size,
            total_frames=self.total_frames,
        )

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if self.is_capturing:
            self.release()
