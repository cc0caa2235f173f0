"""Event models published to the display."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .state import ConnectionState, DisplayStatus


@dataclass(frozen=True)
class BreathMetrics:
    """Latest breath count and noise flag reported by the analysis service."""
    breath_count: int = 0
    noise_detected: bool = False


@dataclass
class StatusEvent:
    """Session status change."""
    status: DisplayStatus
    state: ConnectionState
    session_uid: Optional[str] = None
    error: Optional[str] = None
    holds_resources: bool = False
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class SessionStats:
    """Counters for one streaming session."""
    session_uid: Optional[str] = None
    duration_seconds: float = 0.0
    frames_captured: int = 0
    frames_sent: int = 0
    frames_discarded: int = 0
    messages_received: int = 0
    messages_rejected: int = 0
