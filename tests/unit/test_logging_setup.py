"""Tests for logging configuration."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from forwardops.logging_setup import configure_logging, get_logger


def test_configure_logging_installs_single_root_handler():
    configure_logging("INFO")
    configure_logging("INFO")
    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
    assert root.level == logging.INFO
    assert structlog.is_configured()


def test_configure_logging_accepts_int_level():
    configure_logging(logging.DEBUG)
    assert logging.getLogger().level == logging.DEBUG


def test_configure_logging_rejects_unknown_level():
    with pytest.raises(ValueError, match="Unknown log level"):
        configure_logging("LOUD")


def test_third_party_loggers_quieted():
    configure_logging(logging.DEBUG)
    assert logging.getLogger("LiteLLM").level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


def test_level_filters_structlog_events(capsys):
    configure_logging("WARNING")
    logger = structlog.get_logger(logger_name="forwardops.test")
    logger.info("Chunks stored", chunks=3)
    logger.warning("Stale ingestion failed", document_id="doc-1")
    err = capsys.readouterr().err
    assert "Chunks stored" not in err
    assert "Stale ingestion failed" in err
    assert "doc-1" in err


def test_json_output(capsys):
    configure_logging("INFO", json_output=True)
    structlog.get_logger(logger_name="forwardops.test").info("Document uploaded", bytes=12)
    line = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "Document uploaded"
    assert record["bytes"] == 12
    assert record["level"] == "info"


def test_json_output_from_env(monkeypatch, capsys):
    monkeypatch.setenv("FORWARDOPS_LOG_FORMAT", "json")
    configure_logging("INFO")
    structlog.get_logger().info("Search completed", results=0)
    assert json.loads(capsys.readouterr().err.strip().splitlines()[-1])["results"] == 0


def test_get_logger_configures_when_unset():
    structlog.reset_defaults()
    get_logger("forwardops.test")
    assert structlog.is_configured()
