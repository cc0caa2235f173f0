"""Audio capture and encoding module."""

from .capture import AudioCaptureEngine, CaptureHandle
from .encoder import PCMEncoder

__all__ = [
    'AudioCaptureEngine',
    'CaptureHandle',
    'PCMEncoder',
]
