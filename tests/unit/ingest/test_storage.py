"""Tests for the raw upload file store."""

from __future__ import annotations

import pytest

from forwardops.errors import ValidationError
from forwardops.ingest.storage import FileStore, sanitize_file_name


def test_sanitize_file_name():
    assert sanitize_file_name("My C&P Exam (2023).pdf") == "my_c_p_exam_2023_.pdf"


def test_sanitize_strips_directories():
    assert sanitize_file_name("../../etc/passwd") == "passwd"


def test_sanitize_empty_name():
    assert sanitize_file_name("") == "upload"


def test_save_and_read(tmp_path):
    store = FileStore(tmp_path)
    rel = store.save("user-1", "exam.pdf", b"data")
    assert rel.startswith("user-1/")
    assert rel.endswith("-exam.pdf")
    assert store.read(rel) == b"data"
    assert store.exists(rel)


def test_save_global(tmp_path):
    rel = FileStore(tmp_path).save(None, "handbook.txt", b"x")
    assert rel.startswith("global/")


def test_read_missing(tmp_path):
    with pytest.raises(ValidationError, match="missing"):
        FileStore(tmp_path).read("user-1/none.txt")


def test_remove(tmp_path):
    store = FileStore(tmp_path)
    rel = store.save("user-1", "a.txt", b"x")
    assert store.remove(rel)
    assert not store.exists(rel)
    assert not store.remove(rel)


def test_remove_none(tmp_path):
    assert FileStore(tmp_path).remove(None) is False


def test_path_traversal_rejected(tmp_path):
    store = FileStore(tmp_path / "uploads")
    with pytest.raises(ValidationError, match="escapes"):
        store.read("../secret.txt")
