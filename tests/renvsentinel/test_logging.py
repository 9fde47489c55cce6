"""Tests for logging setup."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from renvsentinel.core.logging import setup_logging


@pytest.fixture(autouse=True)
def _reset():
    yield
    structlog.reset_defaults()
    logging.getLogger("renvsentinel").setLevel(logging.NOTSET)
    logging.getLogger().handlers.clear()


def test_default_level(monkeypatch):
    monkeypatch.delenv("RENVSENTINEL_LOG_LEVEL", raising=False)
    setup_logging()
    assert logging.getLogger("renvsentinel").level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING


def test_verbose_is_debug(monkeypatch):
    monkeypatch.delenv("RENVSENTINEL_LOG_LEVEL", raising=False)
    setup_logging(verbose=True)
    assert logging.getLogger("renvsentinel").level == logging.DEBUG


def test_env_level_wins(monkeypatch):
    monkeypatch.setenv("RENVSENTINEL_LOG_LEVEL", "warning")
    setup_logging(verbose=True)
    assert logging.getLogger("renvsentinel").level == logging.WARNING


def test_json_format(monkeypatch):
    monkeypatch.setenv("RENVSENTINEL_LOG_FORMAT", "json")
    setup_logging()
    handler = logging.getLogger().handlers[0]
    assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)


def test_json_event_fields(monkeypatch, capsys):
    monkeypatch.delenv("RENVSENTINEL_LOG_LEVEL", raising=False)
    monkeypatch.setenv("RENVSENTINEL_LOG_FORMAT", "json")
    setup_logging()
    structlog.get_logger("renvsentinel.engine").info("manifest.added", package="dplyr")

    record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert record["event"] == "manifest.added"
    assert record["package"] == "dplyr"
    assert record["level"] == "info"
    assert record["logger"] == "renvsentinel.engine"
    assert "timestamp" in record
    assert "_record" not in record
