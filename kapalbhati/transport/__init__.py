"""Connection to the breath analysis service."""

from .receiver import ResultsReceiver
from .socket_transport import SocketTransport

__all__ = [
    'ResultsReceiver',
    'SocketTransport',
]
