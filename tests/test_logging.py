"""Tests for logging setup."""

from __future__ import annotations

import json
import logging

import structlog

from expense_flow.models import AppConfig, LoggingConfig
from expense_flow.utils.logging import setup_logging


def test_json_output(capsys):
    setup_logging(LoggingConfig(json=True))
    structlog.get_logger().info("claim_submitted", expense_id="42")

    line = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "claim_submitted"
    assert record["expense_id"] == "42"
    assert record["level"] == "info"


def test_configured_level_filters(capsys):
    setup_logging(LoggingConfig(level="WARNING"))
    structlog.get_logger().info("api_request")
    structlog.get_logger().warning("api_unreachable")

    err = capsys.readouterr().err
    assert "api_request" not in err
    assert "api_unreachable" in err


def test_verbose_overrides_level(capsys):
    setup_logging(LoggingConfig(level="error"), verbose=True)
    structlog.get_logger().debug("api_request")
    assert "api_request" in capsys.readouterr().err
    assert logging.getLogger("httpx").level == logging.DEBUG


def test_quiet_loggers():
    setup_logging(LoggingConfig(quiet_loggers=["expense_flow.test.noisy"]))
    assert logging.getLogger("expense_flow.test.noisy").level == logging.WARNING


def test_logging_section_in_app_config():
    config = AppConfig.model_validate({"logging": {"level": "debug", "json": True}})
    assert config.logging.level == "debug"
    assert config.logging.json_output is True
