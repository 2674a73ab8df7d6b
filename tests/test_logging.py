"""Tests for logging configuration."""

import logging

from posttopics.core.logging import LIBRARY_LEVELS, ServiceNameFilter, get_logging_config


def test_service_name_filter_stamps_records():
    record = logging.LogRecord("posttopics.test", logging.INFO, __file__, 1, "hello", None, None)

    assert ServiceNameFilter("posttopics-cli").filter(record) is True
    assert record.service == "posttopics-cli"


def test_config_quiets_library_loggers():
    config = get_logging_config("posttopics")

    for name, level in LIBRARY_LEVELS.items():
        assert config["loggers"][name]["level"] == level
    assert config["loggers"]["posttopics"]["propagate"] is False
    assert config["filters"]["service"]["service_name"] == "posttopics"


def test_console_formatter_outside_production():
    config = get_logging_config()

    assert config["handlers"]["console"]["formatter"] == "console"
    assert config["filters"]["service"]["service_name"] == "posttopics"


def test_level_override_reaches_handler():
    config = get_logging_config("posttopics-cli", level="debug")

    assert config["handlers"]["console"]["level"] == "DEBUG"
    assert config["loggers"]["posttopics"]["level"] == "DEBUG"
    assert config["root"]["level"] == "DEBUG"
