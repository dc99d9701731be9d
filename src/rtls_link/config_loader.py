"""
Configuration loader for the RTLS-Link device manager
Loads and validates configuration from YAML files
"""

import yaml
import logging
from typing import Dict, Any
from pathlib import Path
from datetime import datetime
import pytz

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from YAML file with validation
    """
    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}

        if not isinstance(config, dict):
            raise ConfigError(f"Top level of {config_path} must be a mapping")

        # Validate required sections
        _validate_sections(config)

        # Apply defaults
        config = _apply_defaults(config)

        # Validate values once defaults are in place
        _validate_values(config)

        logger.info(f"Configuration loaded from {config_path}")
        return config

    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise


def _validate_sections(config: Dict) -> None:
    """Validate that required configuration sections exist"""
    required_sections = ['network']

    for section in required_sections:
        if section not in config:
            raise ConfigError(f"Missing required configuration section: {section}")

    for section, value in config.items():
        if value is not None and not isinstance(value, dict):
            raise ConfigError(f"Configuration section '{section}' must be a mapping")


def _validate_values(config: Dict) -> None:
    """Validate ports, timeouts and concurrency ceilings"""
    network = config['network']
    for key in ('discovery_port', 'log_port'):
        _check_port(f"network.{key}", network[key])
    _check_port("api.port", config['api']['port'])

    _check_positive("network.discovery_duration_seconds", network['discovery_duration_seconds'])
    _check_positive("commands.timeout_seconds", config['commands']['timeout_seconds'])

    max_retries = config['commands']['max_retries']
    if not isinstance(max_retries, int) or max_retries < 0:
        raise ConfigError(f"commands.max_retries must be a non-negative integer, got {max_retries!r}")

    for section in ('bulk', 'ota'):
        concurrency = config[section]['concurrency']
        if not isinstance(concurrency, int) or concurrency < 1:
            raise ConfigError(f"{section}.concurrency must be an integer >= 1, got {concurrency!r}")

    tz_name = config['logging']['timezone']
    if tz_name not in pytz.all_timezones_set:
        raise ConfigError(f"Unknown logging.timezone: {tz_name}")


def _check_port(name: str, value) -> None:
    if not isinstance(value, int) or not 0 <= value <= 65535:
        raise ConfigError(f"{name} must be a port number (0-65535), got {value!r}")


def _check_positive(name: str, value) -> None:
    if not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{name} must be a positive number, got {value!r}")


def _apply_defaults(config: Dict) -> Dict:
    """Apply default values to configuration"""

    defaults = {
        # Network defaults
        'network': {
            'discovery_port': 3333,
            'log_port': 3334,
            'discovery_duration_seconds': 5,
            'bind_address': '0.0.0.0',
            'reuse_port': True
        },
        # Command channel defaults
        'commands': {
            'timeout_seconds': 5,
            'max_retries': 0
        },
        # Fan-out defaults
        'bulk': {
            'concurrency': 5
        },
        'ota': {
            'concurrency': 4
        },
        # API defaults
        'api': {
            'enabled': True,
            'host': '127.0.0.1',
            'port': 8300
        },
        # Logging defaults
        'logging': {
            'level': 'INFO',
            'file': 'logs/rtls_link.log',
            'console_output': True,
            'timezone': 'UTC'
        }
    }

    for section, section_defaults in defaults.items():
        if config.get(section) is None:
            config[section] = {}
        for key, default_value in section_defaults.items():
            if key not in config[section]:
                config[section][key] = default_value

    return config


class TimezoneFormatter(logging.Formatter):
    """Formatter that renders timestamps in a configured timezone"""

    def __init__(self, fmt=None, tz_name: str = 'UTC'):
        super().__init__(fmt)
        self.tz = pytz.timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.tz)
        if datefmt:
            return dt.strftime(datefmt)
        # Default format: YYYY-MM-DD HH:MM:SS.mmm TZ
        return f"{dt.strftime('%Y-%m-%d %H:%M:%S')}.{int(record.msecs):03d} {dt.strftime('%Z')}"


def setup_logging(config: Dict) -> None:
    """Setup logging based on configuration with timezone-aware timestamps"""
    log_config = config.get('logging', {})
    level = log_config.get('level', 'INFO')

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = TimezoneFormatter(log_format, log_config.get('timezone', 'UTC'))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    # Console handler
    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    # File handler
    log_file = log_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logger.info(f"Logging configured: level={level}, timezone={log_config.get('timezone', 'UTC')}, "
                f"console={log_config.get('console_output', True)}, file={log_file}")


def get_sample_config() -> Dict:
    """Return a sample configuration for reference"""
    return {
        "network": {
            "discovery_port": 3333,
            "log_port": 3334,
            "discovery_duration_seconds": 5,
            "bind_address": "0.0.0.0",
            "reuse_port": True
        },
        "commands": {
            "timeout_seconds": 5,
            "max_retries": 1
        },
        "bulk": {
            "concurrency": 5
        },
        "ota": {
            "concurrency": 4
        },
        "api": {
            "enabled": True,
            "host": "127.0.0.1",
            "port": 8300
        },
        "logging": {
            "level": "INFO",
            "file": "logs/rtls_link.log",
            "console_output": True,
            "timezone": "UTC"
        }
    }
