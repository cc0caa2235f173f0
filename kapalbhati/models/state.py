"""Session state enumerations."""

from enum import Enum


class ConnectionState(Enum):
    """Lifecycle state of a streaming session."""
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    STOPPING = "stopping"
    DISCONNECTED = "disconnected"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectionState.DISCONNECTED, ConnectionState.ERROR)


class DisplayStatus(Enum):
    """Status indicator values shown to the user."""
    READY = "Ready"
    CONNECTING = "Connecting..."
    CONNECTED = "Connected"
    RECORDING = "Recording..."
    DISCONNECTED = "Disconnected"
    STOPPED = "Stopped"
    ERROR = "Error"
