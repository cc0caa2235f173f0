"""Session publisher module for status and metrics events."""

import logging

from blinker import signal

from ..models.events import BreathMetrics, StatusEvent

logger = logging.getLogger(__name__)

STATUS_TOPIC = "breath.status"
METRICS_TOPIC = "breath.metrics"


class SessionPublisher:
    """Publishes session status and breath metrics as named Blinker signals."""

    def __init__(self, status_topic: str = STATUS_TOPIC, metrics_topic: str = METRICS_TOPIC):
        """Initialize session publisher.

        Args:
            status_topic: Signal name for status events
            metrics_topic: Signal name for breath metrics
        """
        self.status_signal = signal(status_topic)
        self.metrics_signal = signal(metrics_topic)
        logger.info(f"SessionPublisher initialized with topics: {status_topic}, {metrics_topic}")

    def publish_status(self, event: StatusEvent) -> None:
        self.status_signal.send(self, event=event)
        logger.debug(f"Published status: {event.status.value}")

    def publish_metrics(self, metrics: BreathMetrics) -> None:
        self.metrics_signal.send(self, event=metrics)
