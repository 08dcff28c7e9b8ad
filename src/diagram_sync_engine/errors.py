"""
Error taxonomy for the diagram sync engine.

Every error carries a ``kind`` and a ``details`` mapping holding the minimal
state a caller needs to correct its request (current selection bounds,
current checkpoint id, pending chunk totals) without a second lookup.
"""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base class for all recoverable synchronization errors."""

    kind = "SyncError"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a JSON-compatible payload."""
        return {"error": self.kind, "message": self.message, "details": self.details}


class NotFoundError(SyncError):
    """Unknown view, checkpoint, or pending chunk reference."""

    kind = "NotFound"


class ParseError(SyncError):
    """Malformed edit script or chunk."""

    kind = "ParseError"


class PolicyViolation(SyncError):
    """Selection, replace-all, or baseline-checkpoint rule broken."""

    kind = "PolicyViolation"


class PreconditionFailed(SyncError):
    """Freshness gate or delta baseline missing."""

    kind = "PreconditionFailed"


class ResourceExceeded(SyncError):
    """Chunked upload went past the byte or element ceiling."""

    kind = "ResourceExceeded"


class StorageError(SyncError):
    """Checkpoint persistence failed."""

    kind = "StorageError"
