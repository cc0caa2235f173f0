"""Decoding of analysis results sent back by the service."""

import json
import logging
import math
from numbers import Real
from typing import Any

from ..errors import MalformedPayload
from ..models.events import BreathMetrics

logger = logging.getLogger(__name__)


def _decode_breath_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, Real):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return int(value)


def _decode_noise(value: Any) -> bool:
    # Only the first element of the Noise array carries the flag
    return isinstance(value, list) and len(value) > 0 and bool(value[0])


class ResultsReceiver:
    """Keeps the latest BreathMetrics decoded from inbound text frames."""

    def __init__(self):
        self.latest = BreathMetrics()
        self.messages_received = 0
        self.messages_rejected = 0

    @staticmethod
    def decode(text: str) -> BreathMetrics:
        """Decode one inbound payload.

        Args:
            text: JSON text with ``breath_count`` and ``Noise`` fields

        Returns:
            BreathMetrics with defaults applied for missing or odd fields

        Raises:
            MalformedPayload: The text is not a JSON object
        """
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise MalformedPayload(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedPayload(f"Expected a JSON object, got {type(data).__name__}")

        return BreathMetrics(
            breath_count=_decode_breath_count(data.get("breath_count")),
            noise_detected=_decode_noise(data.get("Noise")),
        )

    def receive(self, text: str) -> BreathMetrics:
        """Decode ``text`` and update the latest metrics.

        Malformed payloads leave the latest metrics unchanged.
        """
        self.messages_received += 1
        try:
            self.latest = self.decode(text)
        except MalformedPayload as e:
            self.messages_rejected += 1
            logger.debug(f"Error parsing message: {e}")
        return self.latest

    def reset(self) -> None:
        self.latest = BreathMetrics()
