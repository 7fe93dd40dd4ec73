"""Tests for single-document storage."""

from backend import storage


def test_get_missing_document():
    assert storage.get_document("sessions/NOPE00") is None


def test_put_then_get():
    storage.put_document("sessions/ABC123", {"keeper_id": "k", "scene": {}})
    assert storage.get_document("sessions/ABC123") == {"keeper_id": "k", "scene": {}}


def test_put_replaces_whole_document():
    storage.put_document("sessions/ABC123", {"a": 1, "b": 2})
    storage.put_document("sessions/ABC123", {"a": 3})
    assert storage.get_document("sessions/ABC123") == {"a": 3}


def test_put_nested_creates_directories():
    storage.put_document("sessions/ABC123/characters/c1", {"name": "Harvey"})
    assert storage.document_file("sessions/ABC123/characters/c1").is_file()


def test_patch_merges_dotted_fields():
    storage.put_document("sessions/ABC123", {"scene": {"music_url": "", "background_url": "a.jpg"}})
    updated = storage.patch_document("sessions/ABC123", {"scene.music_url": "rain.mp3"})
    assert updated == {"scene": {"music_url": "rain.mp3", "background_url": "a.jpg"}}
    assert storage.get_document("sessions/ABC123") == updated


def test_patch_null_value_is_stored():
    storage.put_document("sessions/ABC123", {"scene": {"active_handout": "x.png"}})
    storage.patch_document("sessions/ABC123", {"scene.active_handout": None})
    assert storage.get_document("sessions/ABC123")["scene"]["active_handout"] is None


def test_patch_missing_document():
    assert storage.patch_document("sessions/NOPE00", {"a": 1}) is None
    assert storage.get_document("sessions/NOPE00") is None
