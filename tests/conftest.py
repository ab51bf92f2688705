"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest
import structlog

from forwardops.db.connection import Database
from forwardops.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "forwardops.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep tests away from the real ~/.forwardops config and FORWARDOPS_* overrides."""
    for var in (
        "FORWARDOPS_EMBEDDING_MODEL",
        "FORWARDOPS_GENERATION_MODEL",
        "FORWARDOPS_SUMMARY_MODEL",
        "FORWARDOPS_UPLOAD_DIR",
        "FORWARDOPS_LOG_FORMAT",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(
        "forwardops.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml"
    )


@pytest.fixture(autouse=True)
def _reset_logging():
    """CLI invocations bind log output to the runner's stderr; undo that after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    root.handlers = handlers
    root.setLevel(level)
