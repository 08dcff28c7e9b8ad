"""Tests for SQLite session metadata storage."""

from __future__ import annotations

from pathlib import Path

from diagram_sync_engine.web.storage import ViewSessionStorage


def record(view_id: str, updated_at: str, **fields) -> dict:
    return {
        "viewId": view_id,
        "title": None,
        "description": None,
        "skin": None,
        "lastCheckpointId": None,
        "createdAt": "2026-01-01T00:00:00+00:00",
        "updatedAt": updated_at,
        **fields,
    }


class TestViewSessionStorage:
    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        ViewSessionStorage(tmp_path / "nested" / "dir" / "sessions.db")

        assert (tmp_path / "nested" / "dir" / "sessions.db").exists()

    def test_save_and_load(self, storage: ViewSessionStorage) -> None:
        storage.save_view(record("v1", "2026-01-02T00:00:00+00:00", title="T", skin="paper"))

        loaded = storage.load_view("v1")

        assert loaded is not None
        assert loaded["title"] == "T"
        assert loaded["skin"] == "paper"
        assert loaded["lastCheckpointId"] is None

    def test_load_missing(self, storage: ViewSessionStorage) -> None:
        assert storage.load_view("nope") is None

    def test_save_is_upsert(self, storage: ViewSessionStorage) -> None:
        storage.save_view(record("v1", "2026-01-02T00:00:00+00:00"))
        storage.save_view(
            record(
                "v1",
                "2026-01-03T00:00:00+00:00",
                lastCheckpointId="cp2",
                createdAt="2026-05-05T00:00:00+00:00",
            )
        )

        loaded = storage.load_view("v1")

        assert loaded["lastCheckpointId"] == "cp2"
        assert loaded["updatedAt"] == "2026-01-03T00:00:00+00:00"
        # createdAt is fixed at first insert
        assert loaded["createdAt"] == "2026-01-01T00:00:00+00:00"
        assert len(storage.list_views()) == 1

    def test_list_most_recent_first(self, storage: ViewSessionStorage) -> None:
        storage.save_view(record("old", "2026-01-01T00:00:00+00:00"))
        storage.save_view(record("new", "2026-03-01T00:00:00+00:00"))
        storage.save_view(record("mid", "2026-02-01T00:00:00+00:00"))

        assert [r["viewId"] for r in storage.list_views()] == ["new", "mid", "old"]

    def test_delete(self, storage: ViewSessionStorage) -> None:
        storage.save_view(record("v1", "2026-01-01T00:00:00+00:00"))

        assert storage.delete_view("v1") is True
        assert storage.delete_view("v1") is False
        assert storage.load_view("v1") is None
