"""
Client configuration for the Auth Session Client.

Values are looked up in four layers, first match wins:

1. overrides set from the command line (``set_override``)
2. ``AUTH_SESSION_*`` environment variables
3. the INI file (``~/.authsession/client.conf`` by default)
4. built-in defaults
"""

import copy
import json
import logging
import os
from configparser import ConfigParser, Error as ConfigParserError
from pathlib import Path
from typing import Optional, Dict, Any
from urllib.parse import urlparse

from authshared.exceptions import ConfigurationError, ErrorCode
from authshared.interfaces import IConfigurationManager

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / '.authsession'
DEFAULT_CONFIG_NAME = 'client.conf'

DEFAULT_CONFIG_TEMPLATE = """# Auth Session Client configuration ({config_path})

[server]
# Base URL of the auth service
url = http://localhost:8000
# Seconds before a request is abandoned
timeout = 30

[storage]
# Where tokens are kept: auto, keyring or file
backend = auto
service_name = auth-session-client
# Directory for the encrypted file backend (XDG config dir when unset)
# path = ~/.config/auth-session

[logging]
# DEBUG, INFO, WARNING, ERROR or CRITICAL (WARNING when unset)
# level = INFO
# standard, detailed or json
format = standard
# file = ~/.authsession/client.log
# audit_file = ~/.authsession/audit.log
"""


def _coerce(raw: str) -> Any:
    """Turn an INI or environment string into a number or bool where it is one."""
    text = raw.strip()
    if text.lower() in ('true', 'false'):
        return text.lower() == 'true'
    try:
        value = json.loads(text)
    except ValueError:
        return text
    return value if isinstance(value, (int, float)) else text


class ClientConfiguration(IConfigurationManager):
    """Layered configuration with typed, validated getters."""

    DEFAULTS: Dict[str, Dict[str, Any]] = {
        'server': {
            'url': 'http://localhost:8000',
            'timeout': 30.0,
        },
        'storage': {
            'backend': 'auto',
            'service_name': 'auth-session-client',
            'path': None,
        },
        'logging': {
            'level': None,
            'file': None,
            'format': 'standard',
            'audit_file': None,
        },
    }

    ENV_MAPPINGS = {
        'AUTH_SESSION_SERVER_URL': ('server', 'url'),
        'AUTH_SESSION_TIMEOUT': ('server', 'timeout'),
        'AUTH_SESSION_STORAGE_BACKEND': ('storage', 'backend'),
        'AUTH_SESSION_STORAGE_PATH': ('storage', 'path'),
        'AUTH_SESSION_LOG_LEVEL': ('logging', 'level'),
        'AUTH_SESSION_LOG_FILE': ('logging', 'file'),
    }

    # Command line override name -> dotted config key
    OVERRIDE_KEYS = {
        'server_url': 'server.url',
        'storage_backend': 'storage.backend',
        'log_file': 'logging.file',
        'log_level': 'logging.level',
    }

    def __init__(self, config_file: Optional[str] = None):
        if config_file is None:
            config_file = str(DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_NAME)
            self._ensure_default_file(config_file)

        self._config_file = config_file
        self._config_data: Dict[str, Dict[str, Any]] = {}
        self._overrides: Dict[str, Any] = {}

        self._load_configuration()

    @staticmethod
    def _ensure_default_file(config_path: str) -> None:
        path = Path(config_path)
        if path.exists():
            return

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(DEFAULT_CONFIG_TEMPLATE.format(config_path=config_path))
            logger.info(f"Wrote default configuration to {config_path}")
        except OSError as e:
            logger.warning(f"Could not write default configuration to {config_path}: {e}")

    def _load_configuration(self) -> None:
        self._config_data = copy.deepcopy(self.DEFAULTS)

        for section, values in self._read_file().items():
            self._config_data.setdefault(section, {}).update(values)

        for env_var, (section, key) in self.ENV_MAPPINGS.items():
            raw = os.environ.get(env_var)
            if raw is not None:
                self._config_data.setdefault(section, {})[key] = _coerce(raw)
                logger.debug(f"{section}.{key} taken from {env_var}")

    def _read_file(self) -> Dict[str, Dict[str, Any]]:
        if not os.path.exists(self._config_file):
            logger.info(f"No configuration file at {self._config_file}, using defaults")
            return {}

        parser = ConfigParser()
        try:
            parser.read(self._config_file)
        except ConfigParserError as e:
            logger.warning(f"Ignoring unreadable configuration file {self._config_file}: {e}")
            return {}

        logger.info(f"Configuration loaded from {self._config_file}")
        return {
            section: {key: _coerce(value) for key, value in parser[section].items()}
            for section in parser.sections()
        }

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        Look up a value by dotted key, e.g. ``server.url``.

        Overrides are not consulted; use the typed getters for that.
        """
        section, _, name = key.partition('.')
        if not name:
            return self._config_data.get(section, default)
        return self._config_data.get(section, {}).get(name, default)

    def set_config(self, key: str, value: Any) -> None:
        section, _, name = key.partition('.')
        if not name:
            self._config_data[section] = value
        else:
            self._config_data.setdefault(section, {})[name] = value

    def set_override(self, key: str, value: Any) -> None:
        """
        Set a command line override; ``None`` removes it.

        Args:
            key: One of server_url, storage_backend, log_file, log_level
            value: Override value
        """
        if key not in self.OVERRIDE_KEYS:
            raise ConfigurationError(f"Unknown override: {key}", config_key=key)

        if value is None:
            self._overrides.pop(key, None)
        else:
            self._overrides[key] = value

    def _resolve(self, override_key: str) -> Any:
        if override_key in self._overrides:
            return self._overrides[override_key]
        return self.get_config(self.OVERRIDE_KEYS[override_key])

    def get_server_url(self) -> str:
        """Base URL of the auth service; must be http or https with a host."""
        url = str(self._resolve('server_url'))
        parsed = urlparse(url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ConfigurationError(
                f"Invalid server URL: {url}",
                ErrorCode.CONFIG_INVALID_VALUE,
                config_key='server.url'
            )
        return url

    def get_server_timeout(self) -> float:
        """Request timeout in seconds; must be positive."""
        value = self.get_config('server.timeout')
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            timeout = 0.0

        if timeout <= 0:
            raise ConfigurationError(
                f"Invalid server timeout: {value}",
                ErrorCode.CONFIG_INVALID_VALUE,
                config_key='server.timeout'
            )
        return timeout

    def get_storage_backend(self) -> str:
        return str(self._resolve('storage_backend')).lower()

    def get_storage_service_name(self) -> str:
        return str(self.get_config('storage.service_name'))

    def get_storage_path(self) -> Optional[str]:
        path = self.get_config('storage.path')
        return os.path.expanduser(str(path)) if path else None

    def get_log_level(self) -> Optional[str]:
        """Configured log level name, None when not set anywhere."""
        level = self._resolve('log_level')
        return str(level).upper() if level else None

    def get_log_file(self) -> Optional[str]:
        path = self._resolve('log_file')
        return os.path.expanduser(str(path)) if path else None

    def get_log_format(self) -> str:
        return str(self.get_config('logging.format')).lower()

    def get_audit_file(self) -> Optional[str]:
        path = self.get_config('logging.audit_file')
        return os.path.expanduser(str(path)) if path else None

    def save_configuration(self) -> None:
        """
        Write the current file and environment values back to the INI file.

        Overrides are not saved; unset values are left out.

        Raises:
            ConfigurationError: If the file cannot be written
        """
        parser = ConfigParser()
        for section, values in self._config_data.items():
            if not isinstance(values, dict):
                continue
            parser[section] = {
                key: json.dumps(value) if isinstance(value, bool) else str(value)
                for key, value in values.items() if value is not None
            }

        try:
            Path(self._config_file).parent.mkdir(parents=True, exist_ok=True)
            with open(self._config_file, 'w') as f:
                parser.write(f)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to save configuration to {self._config_file}: {e}",
                ErrorCode.CONFIG_INVALID_FORMAT,
                cause=e
            )

        logger.info(f"Configuration saved to {self._config_file}")

    def get_all_config(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config_data)

    def get_config_file_path(self) -> str:
        return self._config_file

    def reload_configuration(self) -> None:
        """Discard loaded values and read file and environment again."""
        self._load_configuration()
        logger.info("Configuration reloaded")
