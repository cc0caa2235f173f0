"""Terminal user interface."""

from .keyboard_input import KeyboardInputHandler
from .status_screen import StatusScreen

__all__ = ['KeyboardInputHandler', 'StatusScreen']
