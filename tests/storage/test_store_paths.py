"""Tests for storage path helpers."""

import pytest

from backend import storage


def test_document_file():
    assert storage.document_file("sessions/ABC123") == storage.store_dir() / "sessions" / "ABC123.json"


def test_nested_document_file():
    file = storage.document_file("sessions/ABC123/chat/m1")
    assert file == storage.store_dir() / "sessions" / "ABC123" / "chat" / "m1.json"


def test_collection_dir():
    assert storage.collection_dir("sessions/ABC123/characters") == (
        storage.store_dir() / "sessions" / "ABC123" / "characters"
    )


def test_document_file_rejects_collection_path():
    with pytest.raises(ValueError):
        storage.document_file("sessions")


def test_collection_dir_rejects_document_path():
    with pytest.raises(ValueError):
        storage.collection_dir("sessions/ABC123")


@pytest.mark.parametrize("path", ["sessions/..", "sessions/../../etc/passwd", "a/b c"])
def test_traversal_rejected(path):
    with pytest.raises(ValueError):
        storage.document_file(path)


def test_init_creates_store_dir():
    assert storage.store_dir().is_dir()
