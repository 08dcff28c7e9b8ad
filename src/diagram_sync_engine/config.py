"""
Configuration models for the diagram sync engine.

Provides a flexible configuration system that can be loaded from
YAML files, overridden by environment variables, or constructed
programmatically.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

APP_DIR_NAME = "diagram-sync"

# ---------------------------------------------------------------------------
# Cache directory
# ---------------------------------------------------------------------------


def default_cache_dir() -> Path:
    """Return the per-user cache directory for checkpoints and sessions."""
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA")
        if not base:
            profile = os.environ.get("USERPROFILE")
            base = str(Path(profile) / "AppData" / "Local") if profile else None
        root = Path(base) if base else Path(os.environ.get("TEMP", "."))
        return root / APP_DIR_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / APP_DIR_NAME
    xdg = os.environ.get("XDG_CACHE_HOME")
    base_dir = Path(xdg) if xdg else Path.home() / ".cache"
    return base_dir / APP_DIR_NAME


@dataclass
class SyncConfig:
    """
    Main configuration for the diagram sync engine.

    Example YAML:
        host: 127.0.0.1
        port: 0
        base_url: http://localhost:3002
        cache_dir: ~/.cache/diagram-sync
        max_pending_bytes: 5000000
        max_pending_elements: 10000
        ping_interval_seconds: 20
    """

    # Viewer server
    host: str = "127.0.0.1"
    port: int = 0  # 0 = pick a free port
    base_url: str | None = None  # Overrides the URL derived from host/port

    # Storage
    cache_dir: Path = field(default_factory=default_cache_dir)

    # Chunked upload ceilings
    max_pending_bytes: int = 5_000_000
    max_pending_elements: int = 10_000

    # Plain updates above this many script characters get a size warning
    large_payload_chars: int = 20_000

    # Push delivery
    subscriber_queue_size: int = 64
    ping_interval_seconds: float = 20.0

    log_level: str = "INFO"

    @property
    def checkpoint_dir(self) -> Path:
        return self.cache_dir / "checkpoints"

    @property
    def session_db(self) -> Path:
        return self.cache_dir / "sessions.db"

    def resolved_base_url(self, port: int | None = None) -> str:
        """Base URL viewers are reached at, given the port actually bound."""
        if self.base_url:
            return self.base_url.rstrip("/")
        return f"http://localhost:{port if port is not None else self.port}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Create config from a dictionary."""
        defaults = cls()
        cache_dir = data.get("cache_dir")
        return cls(
            host=data.get("host", defaults.host),
            port=int(data.get("port", defaults.port)),
            base_url=data.get("base_url"),
            cache_dir=Path(cache_dir).expanduser() if cache_dir else defaults.cache_dir,
            max_pending_bytes=int(data.get("max_pending_bytes", defaults.max_pending_bytes)),
            max_pending_elements=int(
                data.get("max_pending_elements", defaults.max_pending_elements)
            ),
            large_payload_chars=int(
                data.get("large_payload_chars", defaults.large_payload_chars)
            ),
            subscriber_queue_size=int(
                data.get("subscriber_queue_size", defaults.subscriber_queue_size)
            ),
            ping_interval_seconds=float(
                data.get("ping_interval_seconds", defaults.ping_interval_seconds)
            ),
            log_level=data.get("log_level", defaults.log_level),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> SyncConfig:
        """Load config from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_yaml_string(cls, content: str) -> SyncConfig:
        """Load config from a YAML string."""
        data = yaml.safe_load(content)
        return cls.from_dict(data or {})

    def apply_env(self, environ: dict[str, str] | None = None) -> SyncConfig:
        """Apply environment overrides in place and return self."""
        env = os.environ if environ is None else environ
        if env.get("VIEWER_BASE_URL"):
            self.base_url = env["VIEWER_BASE_URL"]
        if env.get("VIEWER_PORT"):
            self.port = int(env["VIEWER_PORT"])
        if env.get("DIAGRAM_SYNC_CACHE_DIR"):
            self.cache_dir = Path(env["DIAGRAM_SYNC_CACHE_DIR"]).expanduser()
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "host": self.host,
            "port": self.port,
            "base_url": self.base_url,
            "cache_dir": str(self.cache_dir),
            "max_pending_bytes": self.max_pending_bytes,
            "max_pending_elements": self.max_pending_elements,
            "large_payload_chars": self.large_payload_chars,
            "subscriber_queue_size": self.subscriber_queue_size,
            "ping_interval_seconds": self.ping_interval_seconds,
            "log_level": self.log_level,
        }
