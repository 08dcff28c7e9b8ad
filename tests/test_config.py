"""Tests for configuration loading."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from diagram_sync_engine.config import SyncConfig, default_cache_dir


class TestDefaultCacheDir:
    def test_xdg_cache_home(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setattr(sys, "platform", "linux")
        monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))

        assert default_cache_dir() == tmp_path / "diagram-sync"

    def test_linux_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "linux")
        monkeypatch.delenv("XDG_CACHE_HOME", raising=False)

        assert default_cache_dir() == Path.home() / ".cache" / "diagram-sync"

    def test_darwin(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "darwin")

        assert default_cache_dir() == Path.home() / "Library" / "Caches" / "diagram-sync"

    def test_win32_local_app_data(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setattr(sys, "platform", "win32")
        monkeypatch.setenv("LOCALAPPDATA", str(tmp_path))

        assert default_cache_dir() == tmp_path / "diagram-sync"


class TestSyncConfig:
    def test_defaults(self) -> None:
        config = SyncConfig()

        assert config.port == 0
        assert config.max_pending_bytes == 5_000_000
        assert config.max_pending_elements == 10_000
        assert config.large_payload_chars == 20_000
        assert config.ping_interval_seconds == 20.0
        assert config.checkpoint_dir == config.cache_dir / "checkpoints"
        assert config.session_db == config.cache_dir / "sessions.db"

    def test_from_yaml_string(self, tmp_path: Path) -> None:
        config = SyncConfig.from_yaml_string(
            f"""
port: 3002
base_url: https://diagrams.example.com/
cache_dir: {tmp_path}
max_pending_elements: 50
ping_interval_seconds: 5
"""
        )

        assert config.port == 3002
        assert config.cache_dir == tmp_path
        assert config.max_pending_elements == 50
        assert config.max_pending_bytes == 5_000_000
        assert config.ping_interval_seconds == 5.0
        assert config.resolved_base_url() == "https://diagrams.example.com"

    def test_empty_yaml(self) -> None:
        assert SyncConfig.from_yaml_string("").port == 0

    def test_from_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "diagram-sync.yaml"
        path.write_text("host: 0.0.0.0\nlog_level: DEBUG\n")

        config = SyncConfig.from_yaml(path)

        assert config.host == "0.0.0.0"
        assert config.log_level == "DEBUG"

    def test_resolved_base_url_from_port(self) -> None:
        config = SyncConfig(port=3002)

        assert config.resolved_base_url() == "http://localhost:3002"
        assert config.resolved_base_url(45123) == "http://localhost:45123"

    def test_apply_env(self, tmp_path: Path) -> None:
        config = SyncConfig().apply_env(
            {
                "VIEWER_BASE_URL": "http://public:80",
                "VIEWER_PORT": "4000",
                "DIAGRAM_SYNC_CACHE_DIR": str(tmp_path),
            }
        )

        assert config.base_url == "http://public:80"
        assert config.port == 4000
        assert config.cache_dir == tmp_path

    def test_apply_env_ignores_empty(self) -> None:
        config = SyncConfig(port=7).apply_env({"VIEWER_PORT": ""})

        assert config.port == 7

    def test_to_dict_round_trip(self, tmp_path: Path) -> None:
        config = SyncConfig(port=9, cache_dir=tmp_path, max_pending_bytes=100)

        restored = SyncConfig.from_dict(config.to_dict())

        assert restored == config
