"""Tests for configuration loading and logging setup."""

import logging

import pytest
import yaml

from rtls_link.config_loader import (TimezoneFormatter, get_sample_config, load_config,
                                     setup_logging)
from rtls_link.errors import ConfigError


def _write(tmp_path, data) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestLoadConfig:

    def test_defaults_applied(self, tmp_path):
        config = load_config(_write(tmp_path, {"network": {"discovery_port": 4444}}))
        assert config["network"]["discovery_port"] == 4444
        assert config["network"]["log_port"] == 3334
        assert config["network"]["reuse_port"] is True
        assert config["commands"] == {"timeout_seconds": 5, "max_retries": 0}
        assert config["bulk"]["concurrency"] == 5
        assert config["ota"]["concurrency"] == 4
        assert config["api"]["port"] == 8300
        assert config["logging"]["timezone"] == "UTC"

    def test_sample_config_is_valid(self, tmp_path):
        config = load_config(_write(tmp_path, get_sample_config()))
        assert config["commands"]["max_retries"] == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "absent.yaml"))

    def test_missing_network_section(self, tmp_path):
        with pytest.raises(ConfigError, match="network"):
            load_config(_write(tmp_path, {"api": {"port": 8300}}))

    @pytest.mark.parametrize("data, match", [
        ({"network": {"discovery_port": 70000}}, "discovery_port"),
        ({"network": {}, "commands": {"timeout_seconds": 0}}, "timeout_seconds"),
        ({"network": {}, "commands": {"max_retries": -1}}, "max_retries"),
        ({"network": {}, "ota": {"concurrency": 0}}, "ota.concurrency"),
        ({"network": {}, "logging": {"timezone": "Mars/Olympus"}}, "timezone"),
        ({"network": []}, "mapping"),
    ])
    def test_invalid_values(self, tmp_path, data, match):
        with pytest.raises(ConfigError, match=match):
            load_config(_write(tmp_path, data))


class TestLogging:

    def test_timezone_formatter(self):
        formatter = TimezoneFormatter("%(asctime)s %(message)s", "America/Toronto")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
        record.created = 1700000000.0
        record.msecs = 250
        text = formatter.format(record)
        assert text.startswith("2023-11-14 17:13:20.250 EST")
        assert text.endswith("hello")

    def test_setup_logging_creates_file_handler(self, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        log_file = tmp_path / "logs" / "rtls.log"
        try:
            setup_logging({"logging": {"level": "DEBUG", "file": str(log_file),
                                       "console_output": False, "timezone": "UTC"}})
            assert log_file.parent.is_dir()
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, TimezoneFormatter)
        finally:
            for handler in list(root.handlers):
                handler.close()
                root.removeHandler(handler)
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)
