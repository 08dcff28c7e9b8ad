"""SQLite-backed session metadata storage for live views."""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from diagram_sync_engine.config import default_cache_dir


class ViewSessionStorage:
    """SQLite-backed storage for minimal view metadata.

    Only cosmetic metadata and the current checkpoint pointer survive a
    restart; selections, pending chunks and subscribers are in-memory only.
    """

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            db_dir = default_cache_dir()
            db_dir.mkdir(parents=True, exist_ok=True)
            db_path = db_dir / "sessions.db"
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db_path = str(db_path)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database tables."""
        with sqlite3.connect(self._db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS views (
                    id TEXT PRIMARY KEY,
                    title TEXT,
                    description TEXT,
                    skin TEXT,
                    last_checkpoint_id TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)
            conn.commit()

    def save_view(self, record: dict[str, Any]) -> None:
        """Save or update a view's metadata record."""
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                """INSERT INTO views
                   (id, title, description, skin, last_checkpoint_id, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                   title=excluded.title, description=excluded.description,
                   skin=excluded.skin, last_checkpoint_id=excluded.last_checkpoint_id,
                   updated_at=excluded.updated_at""",
                (
                    record["viewId"],
                    record.get("title"),
                    record.get("description"),
                    record.get("skin"),
                    record.get("lastCheckpointId"),
                    record.get("createdAt"),
                    record.get("updatedAt"),
                ),
            )
            conn.commit()

    def load_view(self, view_id: str) -> dict[str, Any] | None:
        """Load a view's metadata by ID."""
        with sqlite3.connect(self._db_path) as conn:
            row = conn.execute(
                "SELECT id, title, description, skin, last_checkpoint_id, created_at, updated_at"
                " FROM views WHERE id = ?",
                (view_id,),
            ).fetchone()
            return _row_to_record(row) if row else None

    def list_views(self) -> list[dict[str, Any]]:
        """List all persisted views, most recently updated first."""
        with sqlite3.connect(self._db_path) as conn:
            rows = conn.execute(
                "SELECT id, title, description, skin, last_checkpoint_id, created_at, updated_at"
                " FROM views ORDER BY updated_at DESC"
            ).fetchall()
            return [_row_to_record(r) for r in rows]

    def delete_view(self, view_id: str) -> bool:
        """Delete a view's metadata. Returns True if it existed."""
        with sqlite3.connect(self._db_path) as conn:
            cursor = conn.execute("DELETE FROM views WHERE id = ?", (view_id,))
            conn.commit()
            return cursor.rowcount > 0


def _row_to_record(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "viewId": row[0],
        "title": row[1],
        "description": row[2],
        "skin": row[3],
        "lastCheckpointId": row[4],
        "createdAt": row[5],
        "updatedAt": row[6],
    }
