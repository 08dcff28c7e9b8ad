"""Shared pytest fixtures for diagram-sync-engine tests."""

from pathlib import Path

import pytest

from diagram_sync_engine import LiveViewHub, MemoryCheckpointStore, View
from diagram_sync_engine.web.storage import ViewSessionStorage


@pytest.fixture
def store() -> MemoryCheckpointStore:
    """An empty in-memory checkpoint store."""
    return MemoryCheckpointStore()


@pytest.fixture
def storage(tmp_path: Path) -> ViewSessionStorage:
    """Session metadata storage in a temporary SQLite file."""
    return ViewSessionStorage(tmp_path / "sessions.db")


@pytest.fixture
def hub(store: MemoryCheckpointStore) -> LiveViewHub:
    """A hub without session persistence."""
    return LiveViewHub(store, base_url="http://localhost:3002")


@pytest.fixture
def view(hub: LiveViewHub) -> View:
    """A view whose renderer image has been fetched, so updates are accepted."""
    view = hub.create_view(title="Test diagram")
    hub.mark_image_access(view.view_id)
    return view


@pytest.fixture
def rect_a() -> dict:
    return {"id": "a", "type": "rectangle", "x": 0, "y": 0, "width": 100, "height": 50}


@pytest.fixture
def rect_b() -> dict:
    return {"id": "b", "type": "rectangle", "x": 200, "y": 0, "width": 100, "height": 50}
