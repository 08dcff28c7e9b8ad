"""
Write-once checkpoint persistence.

A checkpoint is an immutable snapshot of a resolved element list keyed by a
caller-supplied id. There is no update or delete: checkpoints accumulate and
are garbage-collected outside this package.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import json
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from diagram_sync_engine.errors import StorageError
from diagram_sync_engine.logging import get_logger
from diagram_sync_engine.models import Checkpoint, Element, new_token

logger = get_logger("checkpoints")

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def new_checkpoint_id() -> str:
    """Mint a fresh checkpoint id."""
    return new_token()


def is_valid_checkpoint_id(checkpoint_id: str) -> bool:
    return bool(_SAFE_ID.match(checkpoint_id))


class CheckpointStore(ABC):
    """Abstract write-once checkpoint store."""

    @abstractmethod
    async def save(self, checkpoint_id: str, elements: list[Element]) -> Checkpoint:
        """Persist *elements* under *checkpoint_id*.

        Raises:
            StorageError: on I/O failure or if the id is already taken.
        """
        ...

    @abstractmethod
    async def load(self, checkpoint_id: str) -> Checkpoint | None:
        """Return the checkpoint, or ``None`` if it does not exist."""
        ...


class MemoryCheckpointStore(CheckpointStore):
    """Dict-backed store for tests and ephemeral servers."""

    def __init__(self) -> None:
        self._checkpoints: dict[str, Checkpoint] = {}

    def __len__(self) -> int:
        return len(self._checkpoints)

    def __contains__(self, checkpoint_id: object) -> bool:
        return checkpoint_id in self._checkpoints

    async def save(self, checkpoint_id: str, elements: list[Element]) -> Checkpoint:
        if checkpoint_id in self._checkpoints:
            raise StorageError(
                f"Checkpoint {checkpoint_id!r} already exists",
                {"checkpointId": checkpoint_id},
            )
        checkpoint = Checkpoint(id=checkpoint_id, elements=tuple(copy.deepcopy(elements)))
        self._checkpoints[checkpoint_id] = checkpoint
        return checkpoint

    async def load(self, checkpoint_id: str) -> Checkpoint | None:
        return self._checkpoints.get(checkpoint_id)


class FileCheckpointStore(CheckpointStore):
    """
    One JSON document per checkpoint under a directory.

    Blocking file I/O runs in a worker thread so the event loop is only
    suspended, never blocked, while a checkpoint is written or read.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, checkpoint_id: str) -> Path:
        return self._dir / f"{checkpoint_id}.json"

    async def save(self, checkpoint_id: str, elements: list[Element]) -> Checkpoint:
        if not is_valid_checkpoint_id(checkpoint_id):
            raise StorageError(
                f"Invalid checkpoint id: {checkpoint_id!r}",
                {"checkpointId": checkpoint_id},
            )
        try:
            payload = json.dumps({"elements": elements})
        except (TypeError, ValueError) as e:
            raise StorageError(
                f"Checkpoint {checkpoint_id!r} is not JSON-serializable: {e}",
                {"checkpointId": checkpoint_id},
            ) from e
        await asyncio.to_thread(self._write, checkpoint_id, payload)
        logger.debug("Saved checkpoint %s (%d elements)", checkpoint_id, len(elements))
        return Checkpoint(id=checkpoint_id, elements=tuple(json.loads(payload)["elements"]))

    def _write(self, checkpoint_id: str, payload: str) -> None:
        path = self._path(checkpoint_id)
        try:
            # "x" mode keeps checkpoints write-once
            f = open(path, "x", encoding="utf-8")
        except FileExistsError as e:
            raise StorageError(
                f"Checkpoint {checkpoint_id!r} already exists",
                {"checkpointId": checkpoint_id},
            ) from e
        except OSError as e:
            raise StorageError(
                f"Failed to write checkpoint {checkpoint_id!r}: {e}",
                {"checkpointId": checkpoint_id},
            ) from e
        try:
            with f:
                f.write(payload)
        except OSError as e:
            with contextlib.suppress(OSError):
                path.unlink()
            raise StorageError(
                f"Failed to write checkpoint {checkpoint_id!r}: {e}",
                {"checkpointId": checkpoint_id},
            ) from e

    async def load(self, checkpoint_id: str) -> Checkpoint | None:
        if not is_valid_checkpoint_id(checkpoint_id):
            return None
        data = await asyncio.to_thread(self._read, checkpoint_id)
        if data is None:
            return None
        elements = data.get("elements") if isinstance(data, dict) else None
        if not isinstance(elements, list):
            logger.warning("Checkpoint %s has no element list; ignoring", checkpoint_id)
            return None
        return Checkpoint(id=checkpoint_id, elements=tuple(elements))

    def _read(self, checkpoint_id: str) -> Any:
        path = self._path(checkpoint_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read checkpoint %s: %s", checkpoint_id, e)
            return None
        if not raw:
            # Still being written
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Corrupt checkpoint %s: %s", checkpoint_id, e)
            return None
