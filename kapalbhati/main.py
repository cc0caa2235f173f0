"""Main application entry point for the Kapalbhati tracker."""

import sys
import signal
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional, Set

from . import __version__
from .config import KapalbhatiConfig
from .errors import CaptureError
from .models.state import ConnectionState
from .services.session_controller import StreamSessionController
from .ui.keyboard_input import KeyboardInputHandler
from .ui.status_screen import StatusScreen

logger = logging.getLogger(__name__)


class App:
    """Wires configuration, the session controller and the terminal UI together."""

    def __init__(self, config_path: Optional[str] = None, log_level: Optional[str] = None):
        self.config = KapalbhatiConfig(config_path)
        # Command line overrides the configured level
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))

        self.controller: Optional[StreamSessionController] = None
        self.screen: Optional[StatusScreen] = None
        self._exit_event: Optional[asyncio.Event] = None
        self._tasks: Set[asyncio.Future] = set()

    def init(self) -> None:
        logger.info("Initializing services...")
        constraints = self.config.get_capture_constraints()
        logger.info(f"Audio settings: {constraints.sample_rate}Hz, "
                    f"{constraints.block_size} samples/frame, {constraints.channels} channel(s)")
        logger.info(f"Analysis service: {self.config.get_server_url()}")

        self.controller = StreamSessionController(self.config)
        self.screen = StatusScreen()
        self.screen.attach()

    async def run_auto(self, duration: int) -> int:
        """Stream for ``duration`` seconds, then stop.

        Returns:
            Process exit code
        """
        self._exit_event = asyncio.Event()
        self._install_signal_handlers()
        async with self.controller:
            try:
                state = await self.controller.start()
            except CaptureError as e:
                logger.error(f"Could not start session: {e}")
                return 1
            if state is not ConnectionState.STREAMING:
                return 1
            try:
                await asyncio.wait_for(self._exit_event.wait(), timeout=duration)
            except asyncio.TimeoutError:
                logger.info(f"Auto mode finished after {duration}s")
        stats = self.controller.get_session_stats()
        logger.info(f"Frames sent: {stats.frames_sent}, discarded: {stats.frames_discarded}")
        return 0

    async def run_interactive(self) -> int:
        """Run until the user quits; 's' toggles the session."""
        loop = asyncio.get_running_loop()
        self._exit_event = asyncio.Event()
        self._install_signal_handlers()

        handler = KeyboardInputHandler(lambda key: self._on_key(loop, key))
        self.screen.render()
        handler.start()
        try:
            async with self.controller:
                await self._exit_event.wait()
        finally:
            handler.stop()
        return 0

    def _on_key(self, loop: asyncio.AbstractEventLoop, key: str) -> bool:
        """Keyboard thread callback; defers all work to the event loop."""
        if key in ('q', '\x03'):
            loop.call_soon_threadsafe(self._exit_event.set)
            return False
        if key in ('s', ' ', '\r'):
            loop.call_soon_threadsafe(self._toggle_session)
        return True

    def _toggle_session(self) -> None:
        task = asyncio.ensure_future(self.controller.toggle())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._exit_event.set)
            except (NotImplementedError, RuntimeError):
                # Not supported on Windows event loops
                pass

    def cleanup(self) -> None:
        if self.screen:
            self.screen.detach()


def setup_logging(config: KapalbhatiConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get_log_file_path()
    console_output = config.get('logging.console_output', True)

    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    # Console handler - warnings only so the status screen stays readable
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("Kapalbhati tracker starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for the Kapalbhati tracker."""
    parser = argparse.ArgumentParser(
        description="Kapalbhati tracker - real-time breath counting client",
        epilog="Keys: s=Start/Stop session, q=Quit"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: looks for kapalbhati.yaml)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )
    parser.add_argument(
        "--auto",
        action="store_true",
        help="Start a session immediately, stream for --duration seconds, then stop and exit"
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=60,
        help="Duration in seconds for auto mode (default: 60)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Kapalbhati tracker v{__version__}"
    )
    args = parser.parse_args()

    try:
        app = App(args.config, args.log_level)
        app.init()
        if args.auto:
            exit_code = asyncio.run(app.run_auto(args.duration))
        else:
            exit_code = asyncio.run(app.run_interactive())
        app.cleanup()
    except KeyboardInterrupt:
        print("\nGoodbye!")
        exit_code = 0
    except Exception as e:
        print(f"Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
