"""Session services."""

from .publisher import SessionPublisher
from .session_controller import StreamSessionController

__all__ = ['SessionPublisher', 'StreamSessionController']
