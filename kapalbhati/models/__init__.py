"""Data models for the Kapalbhati tracker client."""

from .audio import AudioFrame, CaptureConstraints, CaptureStats, EncodedFrame
from .events import BreathMetrics, SessionStats, StatusEvent
from .session import SessionParameters
from .state import ConnectionState, DisplayStatus

__all__ = [
    "AudioFrame",
    "CaptureConstraints",
    "CaptureStats",
    "EncodedFrame",
    "BreathMetrics",
    "SessionStats",
    "StatusEvent",
    "SessionParameters",
    "ConnectionState",
    "DisplayStatus",
]
