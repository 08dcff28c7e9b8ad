"""Tests for the diagram-sync CLI."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
import yaml

from diagram_sync_engine.checkpoints import FileCheckpointStore
from diagram_sync_engine.cli import load_config, main
from diagram_sync_engine.web.storage import ViewSessionStorage


@pytest.fixture
def isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Run with no config files in reach and the cache under *tmp_path*."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("DIAGRAM_SYNC_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.delenv("VIEWER_BASE_URL", raising=False)
    monkeypatch.delenv("VIEWER_PORT", raising=False)
    return tmp_path


class TestConfigCommands:
    def test_init_writes_defaults(self, isolated: Path) -> None:
        output = isolated / "out.yaml"

        main(["config", "init", "-o", str(output)])

        data = yaml.safe_load(output.read_text())
        assert data["max_pending_bytes"] == 5_000_000
        assert data["port"] == 0

    def test_init_refuses_overwrite(self, isolated: Path) -> None:
        output = isolated / "out.yaml"
        output.write_text("port: 1\n")

        with pytest.raises(SystemExit) as exc_info:
            main(["config", "init", "-o", str(output)])

        assert exc_info.value.code == 1
        assert output.read_text() == "port: 1\n"

    def test_path_lists_search_paths(self, isolated: Path, capsys: pytest.CaptureFixture) -> None:
        main(["config", "path"])

        out = capsys.readouterr().out
        assert "Config file search paths" in out

    def test_load_config_from_cwd(self, isolated: Path) -> None:
        (isolated / "diagram-sync.yaml").write_text("port: 3002\n")

        config, loaded_from = load_config()

        assert config.port == 3002
        assert loaded_from == isolated / "diagram-sync.yaml"
        assert config.cache_dir == isolated / "cache"

    def test_load_config_defaults(self, isolated: Path) -> None:
        config, loaded_from = load_config()

        assert loaded_from is None
        assert config.port == 0

    def test_missing_explicit_config(self, isolated: Path) -> None:
        with pytest.raises(SystemExit):
            load_config(str(isolated / "missing.yaml"))


class TestViewsCommand:
    def test_lists_persisted_views_as_json(
        self, isolated: Path, capsys: pytest.CaptureFixture
    ) -> None:
        storage = ViewSessionStorage(isolated / "cache" / "sessions.db")
        storage.save_view(
            {
                "viewId": "abc123",
                "title": "Flow",
                "lastCheckpointId": "cp1",
                "createdAt": "2026-01-01T00:00:00+00:00",
                "updatedAt": "2026-01-01T00:00:00+00:00",
            }
        )

        main(["views", "--json"])

        views = json.loads(capsys.readouterr().out)
        assert views[0]["viewId"] == "abc123"
        assert views[0]["lastCheckpointId"] == "cp1"


class TestCheckpointCommand:
    def test_shows_checkpoint(self, isolated: Path, capsys: pytest.CaptureFixture) -> None:
        store = FileCheckpointStore(isolated / "cache" / "checkpoints")
        asyncio.run(store.save("cp1", [{"id": "a", "type": "rectangle"}]))

        main(["checkpoint", "cp1", "--json"])

        assert json.loads(capsys.readouterr().out) == {"elements": [{"id": "a", "type": "rectangle"}]}

    def test_missing_checkpoint(self, isolated: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["checkpoint", "nope"])

        assert exc_info.value.code == 1
