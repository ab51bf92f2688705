"""Tests for forwardops remove."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from forwardops.cli.main import app
from forwardops.db.connection import Database
from forwardops.db.repository import Repository

runner = CliRunner()


def _state(project: Path, doc_id: str):
    with Database(project / "forwardops.db") as conn:
        repo = Repository(conn)
        return repo.get_document(doc_id), repo.count_chunks(doc_id)


def test_remove_no_db_exits_1(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["remove", "doc-1", "--owner", "u", "--yes"])
    assert result.exit_code == 1
    assert "forwardops init" in result.output


def test_remove_requires_owner_or_global(project):
    result = runner.invoke(app, ["remove", "doc-1", "--yes"])
    assert result.exit_code == 1


def test_remove_document_not_found_exits_0(project):
    result = runner.invoke(app, ["remove", "missing", "--owner", "u", "--yes"])
    assert result.exit_code == 0
    assert "Document not found" in result.output


def test_remove_asks_confirmation(project, uploaded):
    result = runner.invoke(app, ["remove", uploaded, "--owner", "user-1"], input="n\n")
    assert result.exit_code == 0
    assert "Cancelled" in result.output
    doc, chunks = _state(project, uploaded)
    assert doc is not None
    assert chunks == 2


def test_remove_deletes_document_chunks_and_file(project, uploaded):
    doc, _ = _state(project, uploaded)
    stored = project / "uploads" / doc.file_path

    result = runner.invoke(app, ["remove", uploaded, "--owner", "user-1", "--yes"])
    assert result.exit_code == 0, result.output
    assert "Removed" in result.output
    assert _state(project, uploaded) == (None, 0)
    assert not stored.exists()


def test_remove_other_owner_is_rejected(project, uploaded):
    result = runner.invoke(app, ["remove", uploaded, "--owner", "user-2", "--yes"])
    assert result.exit_code == 1
    assert "--owner" in result.output
    doc, chunks = _state(project, uploaded)
    assert doc is not None
    assert chunks == 2


def test_remove_user_document_with_global_flag_is_rejected(project, uploaded):
    result = runner.invoke(app, ["remove", uploaded, "--global", "--yes"])
    assert result.exit_code == 1
    assert _state(project, uploaded)[0] is not None
