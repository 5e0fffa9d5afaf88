"""
INI configuration loading.
"""

import logging
import os
from configparser import ConfigParser, Error as ConfigParserError
from pathlib import Path
from typing import Any, Dict

from .errors import ConfigurationError

CONFIG_FILE = "/etc/door_sensor/config.ini"
CONFIG_ENV_VAR = "DOOR_SENSOR_CONFIG"

SOURCES = ("gpio", "driven")
BACKOFF_POLICIES = ("fixed", "exponential")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def resolve_config_path(config_file: str = None) -> str:
    """Explicit path, then $DOOR_SENSOR_CONFIG, then the system default."""
    return config_file or os.environ.get(CONFIG_ENV_VAR) or CONFIG_FILE


def load_config(config_file: str = None) -> Dict[str, Any]:
    """Load configuration from INI file."""
    config_path = resolve_config_path(config_file)
    if not Path(config_path).exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    config = ConfigParser()
    try:
        config.read(config_path)
        settings = {
            # GPIO
            'gpio_pin': config.getint('gpio', 'sensor_pin', fallback=17),
            'gpio_pull_up': config.getboolean('gpio', 'pull_up', fallback=True),

            # Monitoring
            'source': config.get('monitoring', 'source', fallback='gpio').strip().lower(),
            'poll_interval': config.getfloat('monitoring', 'poll_interval', fallback=0.1),
            'debounce_delay': config.getfloat('monitoring', 'debounce_delay', fallback=5.0),
            'notify_on_startup': config.getboolean('monitoring', 'notify_on_startup', fallback=False),
            'driven_default': config.get('monitoring', 'driven_default', fallback='closed').strip().lower(),
            'health_interval': config.getint('monitoring', 'health_check_interval', fallback=300),

            # Webhooks
            'endpoints_file': config.get('webhooks', 'endpoints_file',
                                         fallback='/var/lib/door_sensor/endpoints.json'),
            'webhook_timeout': config.getfloat('webhooks', 'timeout', fallback=10.0),
            'max_attempts': config.getint('webhooks', 'max_attempts', fallback=3),
            'backoff': config.get('webhooks', 'backoff', fallback='fixed').strip().lower(),
            'retry_delay': config.getfloat('webhooks', 'retry_delay', fallback=1.0),
            'backoff_base': config.getfloat('webhooks', 'backoff_base', fallback=2.0),
            'source_tag': config.get('webhooks', 'source_tag', fallback='door_sensor'),
            'max_workers': config.getint('webhooks', 'max_workers', fallback=32),

            # HTTP API
            'api_enabled': config.getboolean('api', 'enabled', fallback=True),
            'api_host': config.get('api', 'host', fallback='0.0.0.0'),
            'api_port': config.getint('api', 'port', fallback=3000),

            # Logging
            'log_file': config.get('logging', 'log_file', fallback='/var/log/door_sensor.log'),
            'log_level': config.get('logging', 'level', fallback='INFO').strip().upper(),
            'log_max_bytes': config.getint('logging', 'max_bytes', fallback=1024 * 1024),
            'log_backup_count': config.getint('logging', 'backup_count', fallback=5),

            # Daemon
            'pid_file': config.get('daemon', 'pid_file', fallback='/var/run/door_sensor/door_sensor.pid'),
        }
    except (ConfigParserError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

    validate_config(settings)
    return settings


def validate_config(settings: Dict[str, Any]) -> None:
    """Raise ConfigurationError for out-of-range or unknown values."""
    if not 1 <= settings['gpio_pin'] <= 40:
        raise ConfigurationError("GPIO pin must be between 1-40")
    if settings['poll_interval'] <= 0:
        raise ConfigurationError("Poll interval must be greater than 0")
    if settings['debounce_delay'] <= 0:
        raise ConfigurationError("Debounce delay must be greater than 0")
    if settings['source'] not in SOURCES:
        raise ConfigurationError(f"Unknown signal source: {settings['source']}")
    if settings['driven_default'] not in ('open', 'closed'):
        raise ConfigurationError(f"driven_default must be 'open' or 'closed', got {settings['driven_default']}")
    if settings['webhook_timeout'] <= 0:
        raise ConfigurationError("Webhook timeout must be greater than 0")
    if settings['max_attempts'] < 1:
        raise ConfigurationError("max_attempts must be at least 1")
    if settings['backoff'] not in BACKOFF_POLICIES:
        raise ConfigurationError(f"Unknown backoff policy: {settings['backoff']}")
    if settings['retry_delay'] < 0:
        raise ConfigurationError("retry_delay must not be negative")
    if settings['backoff_base'] < 1:
        raise ConfigurationError("backoff_base must be at least 1")
    if settings['max_workers'] < 1:
        raise ConfigurationError("max_workers must be at least 1")
    if settings['log_level'] not in LOG_LEVELS:
        raise ConfigurationError(f"Unknown log level: {settings['log_level']}")


def log_level(settings: Dict[str, Any]) -> int:
    return getattr(logging, settings['log_level'])
