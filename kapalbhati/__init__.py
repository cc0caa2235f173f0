"""Kapalbhati tracker: streams microphone audio to a breath analysis service."""

__version__ = "0.1.0"
