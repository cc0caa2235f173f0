"""Session-related data models."""

import time
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Set


# Last uid stamp handed out in this process; keeps uids strictly increasing
# even when two sessions are created within the same millisecond.
_last_uid_stamp = 0


def _next_uid_stamp() -> int:
    global _last_uid_stamp
    stamp = time.time_ns() // 1_000_000
    if stamp <= _last_uid_stamp:
        stamp = _last_uid_stamp + 1
    _last_uid_stamp = stamp
    return stamp


@dataclass(frozen=True)
class SessionParameters:
    """Configuration forwarded to the analysis service as the handshake.

    Every field except ``uid`` is a fixed constant. The thresholds are not
    validated here; the analysis service owns their meaning.
    """
    uid: str
    user_name: str = "Guest"
    rate: int = 16000
    chunk_size: int = 4096
    no_of_chunks: int = 3
    frame_length: int = 512
    hop_length: int = 64
    n_mels: int = 128
    n2: int = 30
    n1: int = 10
    bump_threshold: float = 0.15
    WINDOW_DURATION: float = 4.0
    MIN_FREQ: float = 0.4
    MAX_FREQ: float = 2.5
    CONFIRMATION_THRESHOLD: int = 4
    wave_amplitude_thresold: float = 3.0

    @classmethod
    def constant_names(cls) -> Set[str]:
        """Names of the fields that config may override."""
        return {f.name for f in fields(cls)} - {"uid", "user_name"}

    @classmethod
    def create(cls, user_name: str = "Guest", uid_prefix: str = "guest_user_",
               **overrides: Any) -> "SessionParameters":
        """Build the parameters for a new session.

        Args:
            user_name: Display name sent to the analysis service
            uid_prefix: Prefix of the generated session uid
            **overrides: Replacement values for the constant fields

        Returns:
            A frozen SessionParameters with a fresh uid
        """
        unknown = set(overrides) - cls.constant_names()
        if unknown:
            raise TypeError(f"Unknown session parameters: {sorted(unknown)}")
        return cls(uid=f"{uid_prefix}{_next_uid_stamp()}", user_name=user_name, **overrides)

    def to_handshake(self) -> Dict[str, Any]:
        """Return the handshake payload with the wire field names."""
        return asdict(self)
