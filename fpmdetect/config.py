"""
fpmdetect - Configuration Module

Handles loading and validation of detector settings.
"""

import os
from typing import Optional

from .fastcgi import parse_socket_uri

# Default configuration file path
CONFIG_FILE = "/etc/fpmdetect/fpmdetect.conf"


class ConfigError(Exception):
    """Configuration error"""
    pass


def load_config(config_file: str = None) -> dict:
    """Load and validate settings from file

    The default file is optional; an explicitly named file must exist.

    Args:
        config_file: Path to config file (defaults to /etc/fpmdetect/fpmdetect.conf)

    Returns:
        dict: Settings with all keys and defaults applied

    Raises:
        ConfigError: If the file is unreadable or a value is invalid
    """
    config_path = config_file or CONFIG_FILE

    if os.path.exists(config_path):
        config = _parse_config_file(config_path)
    elif config_file:
        raise ConfigError(f"Configuration file not found: {config_path}")
    else:
        config = {}

    config = _apply_defaults(config)
    _validate_config(config)
    return config


def _parse_config_file(filepath: str) -> dict:
    """Parse key=value config file

    Args:
        filepath: Path to config file

    Returns:
        dict: Raw configuration values
    """
    config = {}

    try:
        with open(filepath, 'r') as f:
            for line in f:
                line = line.strip()
                # Skip comments and empty lines
                if not line or line.startswith('#'):
                    continue
                if '=' in line:
                    key, value = line.split('=', 1)
                    config[key.strip()] = value.strip()
    except OSError as e:
        raise ConfigError(f"Could not read config file {filepath}: {e}") from e

    return config


def _number(config: dict, key: str, default: str, cast=float) -> Optional[float]:
    raw = config.get(key, default)
    if raw == '':
        return None
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"Invalid value for {key}: {raw!r}")


def _apply_defaults(config: dict) -> dict:
    """Apply default values for optional settings

    Args:
        config: Raw configuration from file

    Returns:
        dict: Configuration with defaults applied
    """
    return {
        # Explicit endpoint: unix:///run/php/php-fpm.sock or tcp://127.0.0.1:9000
        'listen': config.get('listen', ''),
        # Per-address dial timeout while probing
        'probe_timeout_ms': _number(config, 'probe_timeout_ms', '100', int),
        # Timeout of the introspection requests, seconds
        'request_timeout': _number(config, 'request_timeout', '5'),
        # Deadline of php-fpm -tt, seconds (empty = wait forever)
        'dump_timeout': _number(config, 'dump_timeout', ''),
        # Where to stage the PHP scripts (empty = temporary folder)
        'scripts_dir': config.get('scripts_dir', ''),
        'fpm_marker': config.get('fpm_marker', '-fpm'),
        'debug': config.get('debug', 'false').lower() == 'true',
    }


def _validate_config(config: dict) -> None:
    """Validate settings

    Args:
        config: Configuration dict to validate

    Raises:
        ConfigError: If a value is out of range
    """
    if config['probe_timeout_ms'] is None or config['probe_timeout_ms'] <= 0:
        raise ConfigError("probe_timeout_ms must be a positive number of milliseconds")

    if config['request_timeout'] is None or config['request_timeout'] <= 0:
        raise ConfigError("request_timeout must be a positive number of seconds")

    if config['dump_timeout'] is not None and config['dump_timeout'] <= 0:
        raise ConfigError("dump_timeout must be positive (or empty for no limit)")

    if not config['fpm_marker']:
        raise ConfigError("fpm_marker cannot be empty")

    if config['listen']:
        try:
            parse_socket_uri(config['listen'])
        except ValueError as e:
            raise ConfigError(str(e))
