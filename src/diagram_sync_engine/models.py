"""
Data models for diagram state synchronization.

Elements are schema-less mappings passed through verbatim. Only the three
pseudo-operation types below are interpreted by the resolver.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from diagram_sync_engine.transports.base import PushSink

Element = dict[str, Any]

# Pseudo-operation type tags
RESTORE_CHECKPOINT = "restoreCheckpoint"
DELETE = "delete"
CAMERA_UPDATE = "cameraUpdate"

# Push event names
UPDATE_EVENT = "update"
META_EVENT = "meta"
CLOSED_EVENT = "closed"


def utc_now() -> str:
    """ISO-8601 timestamp in UTC, sortable as text."""
    return datetime.now(timezone.utc).isoformat()


def new_token() -> str:
    """Short random identifier used for view and checkpoint ids."""
    return uuid.uuid4().hex[:18]


@dataclass(frozen=True)
class Checkpoint:
    """Immutable named snapshot of a resolved element list."""

    id: str
    elements: tuple[Element, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"elements": list(self.elements)}


@dataclass
class Bounds:
    """Axis-aligned rectangle in diagram coordinates."""

    x: float
    y: float
    width: float
    height: float
    view_box: Bounds | None = None

    def contains(self, other: Bounds) -> bool:
        """True when *other* lies fully inside this rectangle."""
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.x + other.width <= self.x + self.width
            and other.y + other.height <= self.y + self.height
        )

    @classmethod
    def from_dict(cls, data: Any) -> Bounds | None:
        """Parse a ``{x, y, width, height, viewBox?}`` mapping; None if malformed."""
        if not isinstance(data, dict):
            return None
        try:
            x, y, width, height = (data[k] for k in ("x", "y", "width", "height"))
        except KeyError:
            return None
        for value in (x, y, width, height):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return None
        view_box = cls.from_dict(data.get("viewBox")) if "viewBox" in data else None
        return cls(x=x, y=y, width=width, height=height, view_box=view_box)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }
        if self.view_box is not None:
            data["viewBox"] = self.view_box.to_dict()
        return data


@dataclass
class Selection:
    """The single active user-drawn selection of a view."""

    bounds: Bounds
    png_base64: str | None = None
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"bounds": self.bounds.to_dict(), "updatedAt": self.updated_at}
        if self.png_base64 is not None:
            data["pngBase64"] = self.png_base64
        return data


class SelectionState(str, Enum):
    NO_SELECTION = "no_selection"
    SELECTION_ACTIVE = "selection_active"


@dataclass
class PendingChunk:
    """Accumulator for an in-progress chunked upload."""

    elements: list[Element] = field(default_factory=list)
    total_bytes: int = 0

    @property
    def total_elements(self) -> int:
        return len(self.elements)


@dataclass(frozen=True)
class PendingTotals:
    """Running totals reported after a chunk is appended."""

    total_elements: int
    total_bytes: int

    def to_dict(self) -> dict[str, int]:
        return {"totalElements": self.total_elements, "totalBytes": self.total_bytes}


@dataclass
class View:
    """The mutable unit of diagram state."""

    view_id: str
    url: str
    title: str | None = None
    description: str | None = None
    skin: str | None = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    last_checkpoint_id: str | None = None
    last_image_access_at: str | None = None
    selection: Selection | None = None
    allow_replace_all: bool = False
    pending_chunk: PendingChunk | None = None
    subscribers: set[PushSink] = field(default_factory=set)

    # Render artifacts reported back by the viewer
    last_payload: dict[str, Any] | None = None
    last_svg: str | None = None
    last_png: bytes | None = None

    def meta(self) -> dict[str, Any]:
        """Cosmetic metadata, as pushed with the ``meta`` event."""
        return {
            "viewId": self.view_id,
            "title": self.title,
            "description": self.description,
            "skin": self.skin,
        }

    def summary(self) -> dict[str, Any]:
        """Metadata-only listing entry."""
        return {
            "viewId": self.view_id,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "skin": self.skin,
            "lastCheckpointId": self.last_checkpoint_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def session_record(self) -> dict[str, Any]:
        """Fields persisted as session metadata."""
        return {
            "viewId": self.view_id,
            "title": self.title,
            "description": self.description,
            "skin": self.skin,
            "lastCheckpointId": self.last_checkpoint_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class ResolveResult:
    """Output of resolving an edit script."""

    parsed: list[Any]
    resolved_elements: list[Element]
    ratio_hint: str = ""


@dataclass
class UpdateResult:
    """Success payload of a committed update."""

    view_id: str
    checkpoint_id: str
    element_count: int
    ratio_hint: str = ""
    size_warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "viewId": self.view_id,
            "checkpointId": self.checkpoint_id,
            "elementCount": self.element_count,
        }
        if self.ratio_hint:
            data["ratioHint"] = self.ratio_hint
        if self.size_warning:
            data["sizeWarning"] = self.size_warning
        return data


@dataclass
class ImageSnapshot:
    """Cached render artifacts of a view."""

    view_id: str
    svg: str | None = None
    png_base64: str | None = None
    updated_at: str | None = None
