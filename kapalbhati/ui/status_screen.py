"""Terminal display of breath count, noise flag and session status."""

import logging
from typing import Optional

from blinker import signal
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.events import BreathMetrics, StatusEvent
from ..models.state import DisplayStatus
from ..services.publisher import METRICS_TOPIC, STATUS_TOPIC

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    DisplayStatus.READY: "bold white",
    DisplayStatus.CONNECTING: "bold yellow",
    DisplayStatus.CONNECTED: "bold green",
    DisplayStatus.RECORDING: "bold red",
    DisplayStatus.DISCONNECTED: "bold yellow",
    DisplayStatus.STOPPED: "bold yellow",
    DisplayStatus.ERROR: "bold red",
}


class StatusScreen:
    """Renders session updates published on the status and metrics signals."""

    def __init__(self, console: Optional[Console] = None,
                 status_topic: str = STATUS_TOPIC, metrics_topic: str = METRICS_TOPIC):
        self.console = console or Console()
        self.status_signal = signal(status_topic)
        self.metrics_signal = signal(metrics_topic)

        self.status = DisplayStatus.READY
        self.error: Optional[str] = None
        self.metrics = BreathMetrics()
        self.recording = False

    def attach(self) -> None:
        self.status_signal.connect(self.on_status)
        self.metrics_signal.connect(self.on_metrics)

    def detach(self) -> None:
        self.status_signal.disconnect(self.on_status)
        self.metrics_signal.disconnect(self.on_metrics)

    def on_status(self, sender, event: StatusEvent) -> None:
        self.status = event.status
        self.error = event.error
        # A dropped connection still holds the microphone until the session is stopped
        self.recording = event.holds_resources
        self.render()

    def on_metrics(self, sender, event: BreathMetrics) -> None:
        self.metrics = event
        self.render()

    def build_panel(self) -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(justify="right")
        table.add_column()
        table.add_row("Breath Count", Text(str(self.metrics.breath_count), style="bold cyan"))
        if self.metrics.noise_detected:
            table.add_row("", Text("Noise Detected", style="bold magenta"))
        table.add_row("Status", Text(self.status.value, style=STATUS_STYLES[self.status]))
        if self.error:
            table.add_row("", Text(f"Error: {self.error}", style="red"))

        action = "[s] Stop Session" if self.recording else "[s] Start Session"
        return Panel(table, title="Kapalbhati Tracker", subtitle=Text(f"{action}   [q] Quit"))

    def render(self) -> None:
        self.console.clear()
        self.console.print(self.build_panel())
