"""
Edit-script resolution.

An edit script is a JSON array of ordinary drawable elements interleaved
with three pseudo-operations:

- ``{"type": "restoreCheckpoint", "id": "..."}`` appends every element of a
  stored checkpoint. A missing checkpoint contributes nothing.
- ``{"type": "delete", "ids": "a, b, c"}`` removes the first element already
  resolved for each listed id. Unknown ids are ignored.
- ``{"type": "cameraUpdate", "width": ..., "height": ...}`` is kept as a
  viewport directive and produces an advisory hint when its aspect ratio
  strays from 4:3.

Everything else is passed through verbatim.
"""

from __future__ import annotations

import json
from typing import Any

from diagram_sync_engine.checkpoints import CheckpointStore
from diagram_sync_engine.errors import ParseError
from diagram_sync_engine.models import (
    CAMERA_UPDATE,
    DELETE,
    RESTORE_CHECKPOINT,
    Element,
    ResolveResult,
)

IDEAL_RATIO = 4 / 3
RATIO_TOLERANCE = 0.05


def parse_script(raw: str | list[Any]) -> list[Any]:
    """Decode an edit script.

    Raises:
        ParseError: if *raw* is not valid JSON or not an array.
    """
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON: {e}") from e
    else:
        parsed = raw
    if not isinstance(parsed, list):
        raise ParseError("Expected a JSON array of elements.")
    return parsed


def is_restore(item: Any) -> bool:
    return (
        isinstance(item, dict)
        and item.get("type") == RESTORE_CHECKPOINT
        and isinstance(item.get("id"), str)
    )


def is_delete(item: Any) -> bool:
    return isinstance(item, dict) and item.get("type") == DELETE and isinstance(item.get("ids"), str)


def is_camera_update(item: Any) -> bool:
    return isinstance(item, dict) and item.get("type") == CAMERA_UPDATE


def has_restore(items: list[Any]) -> bool:
    """True when the script carries at least one restoreCheckpoint item."""
    return any(is_restore(item) for item in items)


def split_ids(ids: str) -> list[str]:
    return [part.strip() for part in ids.split(",") if part.strip()]


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def camera_ratio_hint(item: Element) -> str | None:
    """Advisory message for an off-ratio camera, or None if none applies."""
    width = _number(item.get("width"))
    height = _number(item.get("height"))
    if not width or not height:
        return None
    ratio = width / height
    if abs(ratio - IDEAL_RATIO) > RATIO_TOLERANCE:
        return f"Camera ratio is {ratio:.2f} (ideal ~1.33). Consider 4:3-ish for better fit."
    return None


def _remove_first(resolved: list[Any], element_id: str) -> None:
    for index, element in enumerate(resolved):
        if isinstance(element, dict) and element.get("id") == element_id:
            del resolved[index]
            return


class ElementResolver:
    """Turns an edit script into a concrete, renderer-ready element list."""

    def __init__(self, store: CheckpointStore) -> None:
        self.store = store

    async def resolve(self, raw: str | list[Any]) -> ResolveResult:
        """
        Resolve *raw* in a single left-to-right pass.

        Only the last off-ratio cameraUpdate sets the hint; an in-ratio one
        leaves any earlier hint in place.

        Raises:
            ParseError: if the script is not a JSON array.
        """
        parsed = parse_script(raw)
        resolved: list[Any] = []
        ratio_hint = ""

        for item in parsed:
            if is_restore(item):
                checkpoint = await self.store.load(item["id"])
                if checkpoint is not None:
                    resolved.extend(checkpoint.elements)
                continue

            if is_delete(item):
                for element_id in split_ids(item["ids"]):
                    _remove_first(resolved, element_id)
                continue

            if is_camera_update(item):
                hint = camera_ratio_hint(item)
                if hint:
                    ratio_hint = hint

            resolved.append(item)

        return ResolveResult(parsed=parsed, resolved_elements=resolved, ratio_hint=ratio_hint)
