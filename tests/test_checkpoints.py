"""Tests for checkpoint stores."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from diagram_sync_engine.checkpoints import (
    FileCheckpointStore,
    MemoryCheckpointStore,
    is_valid_checkpoint_id,
    new_checkpoint_id,
)
from diagram_sync_engine.errors import StorageError


class TestCheckpointIds:
    def test_new_id_is_short_hex(self) -> None:
        checkpoint_id = new_checkpoint_id()
        assert len(checkpoint_id) == 18
        int(checkpoint_id, 16)

    def test_new_ids_are_unique(self) -> None:
        assert len({new_checkpoint_id() for _ in range(100)}) == 100

    def test_path_traversal_is_invalid(self) -> None:
        assert is_valid_checkpoint_id("abc_123-x")
        assert not is_valid_checkpoint_id("../etc/passwd")
        assert not is_valid_checkpoint_id("")


class TestMemoryCheckpointStore:
    @pytest.mark.asyncio
    async def test_save_then_load(self) -> None:
        store = MemoryCheckpointStore()
        await store.save("cp1", [{"id": "a", "type": "rectangle"}])

        checkpoint = await store.load("cp1")

        assert checkpoint is not None
        assert checkpoint.id == "cp1"
        assert list(checkpoint.elements) == [{"id": "a", "type": "rectangle"}]

    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self) -> None:
        assert await MemoryCheckpointStore().load("nope") is None

    @pytest.mark.asyncio
    async def test_write_once(self) -> None:
        store = MemoryCheckpointStore()
        await store.save("cp1", [])

        with pytest.raises(StorageError) as exc_info:
            await store.save("cp1", [{"id": "x"}])

        assert exc_info.value.details == {"checkpointId": "cp1"}

    @pytest.mark.asyncio
    async def test_saved_elements_are_isolated_from_caller(self) -> None:
        store = MemoryCheckpointStore()
        elements = [{"id": "a", "x": 1}]
        await store.save("cp1", elements)

        elements[0]["x"] = 99

        checkpoint = await store.load("cp1")
        assert checkpoint is not None
        assert checkpoint.elements[0]["x"] == 1


class TestFileCheckpointStore:
    @pytest.mark.asyncio
    async def test_save_writes_json_document(self, tmp_path: Path) -> None:
        store = FileCheckpointStore(tmp_path / "cps")
        await store.save("cp1", [{"id": "a"}])

        data = json.loads((tmp_path / "cps" / "cp1.json").read_text())
        assert data == {"elements": [{"id": "a"}]}

    @pytest.mark.asyncio
    async def test_load_survives_new_instance(self, tmp_path: Path) -> None:
        await FileCheckpointStore(tmp_path).save("cp1", [{"id": "a"}, {"id": "b"}])

        checkpoint = await FileCheckpointStore(tmp_path).load("cp1")

        assert checkpoint is not None
        assert [e["id"] for e in checkpoint.elements] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self, tmp_path: Path) -> None:
        assert await FileCheckpointStore(tmp_path).load("missing") is None

    @pytest.mark.asyncio
    async def test_load_corrupt_returns_none(self, tmp_path: Path) -> None:
        (tmp_path / "bad.json").write_text("{not json")
        (tmp_path / "shape.json").write_text('{"elements": 3}')
        store = FileCheckpointStore(tmp_path)

        assert await store.load("bad") is None
        assert await store.load("shape") is None

    @pytest.mark.asyncio
    async def test_write_once(self, tmp_path: Path) -> None:
        store = FileCheckpointStore(tmp_path)
        await store.save("cp1", [{"id": "a"}])

        with pytest.raises(StorageError):
            await store.save("cp1", [{"id": "b"}])

        checkpoint = await store.load("cp1")
        assert checkpoint is not None
        assert checkpoint.elements[0]["id"] == "a"

    @pytest.mark.asyncio
    async def test_unsafe_id_rejected(self, tmp_path: Path) -> None:
        store = FileCheckpointStore(tmp_path / "cps")

        with pytest.raises(StorageError):
            await store.save("../escape", [])
        assert await store.load("../escape") is None
        assert not (tmp_path / "escape.json").exists()

    @pytest.mark.asyncio
    async def test_io_failure_raises_storage_error(self, tmp_path: Path) -> None:
        store = FileCheckpointStore(tmp_path / "cps")
        # Replace the directory with a file so writes fail.
        (tmp_path / "cps").rmdir()
        (tmp_path / "cps").write_text("")

        with pytest.raises(StorageError):
            await store.save("cp1", [])
