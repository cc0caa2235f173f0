"""Simple YAML configuration loader for the Kapalbhati tracker."""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import yaml

from ..errors import ConfigurationError
from ..models.audio import CaptureConstraints
from ..models.session import SessionParameters

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "kapalbhati.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "server": {
        "host": "kb.optalpha.com",
        "port": 8765,
        "scheme": "ws",
    },
    "audio": {
        "sample_rate": 16000,
        "block_size": 4096,
        "channels": 1,
        "input_device_index": None,
    },
    "session": {
        "user_name": "Guest",
        "uid_prefix": "guest_user_",
        "parameters": {},
    },
    "logging": {
        "level": "INFO",
        "file_path": "logs/kapalbhati.log",
        "console_output": True,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class KapalbhatiConfig:
    """Kapalbhati tracker configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, looks for kapalbhati.yaml
                        in the current directory and falls back to built-in defaults.
        """
        if config_path is None:
            candidate = Path.cwd() / CONFIG_FILENAME
            self.config_file: Optional[Path] = candidate if candidate.exists() else None
        else:
            self.config_file = Path(config_path)
            if not self.config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        self.config = copy.deepcopy(DEFAULT_CONFIG)
        if self.config_file is None:
            logger.info("No configuration file found, using defaults")
        else:
            logger.info(f"Loading configuration from: {self.config_file}")
            _merge(self.config, self._load_config())
        self._validate_session_parameters()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigurationError("Configuration file must contain a mapping")

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _validate_session_parameters(self) -> None:
        """Reject session.parameters keys the handshake does not carry."""
        parameters = self.get('session.parameters') or {}
        if not isinstance(parameters, dict):
            raise ConfigurationError("session.parameters must be a mapping")
        unknown = set(parameters) - SessionParameters.constant_names()
        if unknown:
            raise ConfigurationError(f"Unknown session parameters: {sorted(unknown)}")

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent
        log_path = (config.get('logging') or {}).get('file_path')
        if log_path and not os.path.isabs(log_path):
            config['logging']['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'server.host').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config
        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation."""
        keys = key_path.split('.')
        config_dict = self.config
        for key in keys[:-1]:
            config_dict = config_dict.setdefault(key, {})
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_server_url(self) -> str:
        """Get the analysis service WebSocket address."""
        url = self.get('server.url')
        if url:
            return url
        scheme = self.get('server.scheme', 'ws')
        return f"{scheme}://{self.get('server.host')}:{self.get('server.port')}"

    def get_capture_constraints(self) -> CaptureConstraints:
        """Get microphone constraints for a new session."""
        return CaptureConstraints(
            sample_rate=int(self.get('audio.sample_rate', 16000)),
            channels=int(self.get('audio.channels', 1)),
            block_size=int(self.get('audio.block_size', 4096)),
            input_device_index=self.get('audio.input_device_index'),
        )

    def get_session_settings(self) -> Dict[str, Any]:
        """Get keyword arguments for SessionParameters.create."""
        settings = {
            'user_name': self.get('session.user_name', 'Guest'),
            'uid_prefix': self.get('session.uid_prefix', 'guest_user_'),
        }
        settings.update(self.get('session.parameters') or {})
        return settings

    def get_log_file_path(self) -> str:
        return str(Path(self.get('logging.file_path', 'logs/kapalbhati.log')).absolute())
