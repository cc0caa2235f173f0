"""Audio-related data models."""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class CaptureConstraints:
    """Constraints requested from the microphone."""
    sample_rate: int = 16000
    channels: int = 1
    block_size: int = 4096
    echo_cancellation: bool = False
    noise_suppression: bool = False
    input_device_index: Optional[int] = None


@dataclass
class AudioFrame:
    """One block of float samples delivered by the capture callback."""
    samples: np.ndarray  # float32, nominally in [-1.0, 1.0]
    timestamp: float  # Time when this frame was captured
    sequence_number: int

    def __len__(self) -> int:
        return len(self.samples)


@dataclass
class EncodedFrame:
    """Signed 16-bit PCM samples ready for the wire."""
    samples: np.ndarray  # little-endian int16
    sequence_number: int

    def __len__(self) -> int:
        return len(self.samples)

    def to_bytes(self) -> bytes:
        return self.samples.astype("<i2", copy=False).tobytes()


@dataclass
class CaptureStats:
    """Audio capture statistics."""
    is_capturing: bool
    duration_seconds: float
    sample_rate: int
    block_size: int
    total_frames: int
