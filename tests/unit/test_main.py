"""Unit tests for the application entry point."""

import asyncio
import logging
from unittest.mock import Mock, patch

import pytest

from kapalbhati.errors import PermissionDenied
from kapalbhati.main import App, setup_logging
from kapalbhati.models.state import ConnectionState


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "kapalbhati.yaml"
    path.write_text("logging:\n  file_path: logs/app.log\n  console_output: false\n")
    return path


@pytest.mark.unit
class TestSetupLogging:

    def test_creates_log_file(self, test_config, tmp_path, restore_logging):
        setup_logging(test_config, "DEBUG")

        assert (tmp_path / "logs" / "test.log").exists()
        assert logging.getLogger().level == logging.DEBUG


@pytest.mark.unit
class TestApp:
    """Test cases for App wiring."""

    def test_init(self, config_file, restore_logging):
        app = App(str(config_file))
        app.init()

        assert app.controller.state is ConnectionState.IDLE
        assert app.screen is not None
        app.cleanup()

    def test_command_line_level_overrides_config(self, config_file, restore_logging):
        App(str(config_file), "WARNING")

        assert logging.getLogger().level == logging.WARNING

    def test_keys(self, config_file, restore_logging):
        app = App(str(config_file))
        app._exit_event = Mock()
        loop = Mock()

        assert app._on_key(loop, 's') is True
        loop.call_soon_threadsafe.assert_called_once_with(app._toggle_session)
        assert app._on_key(loop, 'x') is True
        assert loop.call_soon_threadsafe.call_count == 1
        assert app._on_key(loop, 'q') is False
        loop.call_soon_threadsafe.assert_called_with(app._exit_event.set)

    def test_auto_mode_capture_failure(self, config_file, restore_logging, make_capture):
        app = App(str(config_file))
        app.init()
        app.controller.capture = make_capture(fail_with=PermissionDenied("denied"))

        exit_code = asyncio.run(app.run_auto(1))

        assert exit_code == 1
        assert app.controller.state is ConnectionState.IDLE
        app.cleanup()

    def test_auto_mode_streams_then_stops(self, config_file, restore_logging, fake_capture, transport_factory):
        app = App(str(config_file))
        app.init()
        app.controller.capture = fake_capture
        app.controller.transport_factory = transport_factory

        with patch.object(App, '_install_signal_handlers'):
            exit_code = asyncio.run(app.run_auto(0))

        assert exit_code == 0
        assert app.controller.state is ConnectionState.DISCONNECTED
        assert fake_capture.is_capturing is False
        app.cleanup()
