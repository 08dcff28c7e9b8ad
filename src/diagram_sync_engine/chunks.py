"""Chunked-upload accumulation with fail-closed resource ceilings."""

from __future__ import annotations

import json
from typing import Any

from diagram_sync_engine.errors import NotFoundError, ParseError, ResourceExceeded
from diagram_sync_engine.logging import get_logger
from diagram_sync_engine.models import Element, PendingChunk, PendingTotals, View

logger = get_logger("chunks")

DEFAULT_MAX_PENDING_BYTES = 5_000_000
DEFAULT_MAX_PENDING_ELEMENTS = 10_000


def decode_chunk(raw: str | list[Any]) -> tuple[list[Element], int]:
    """Decode one chunk and return its elements with a byte-length hint.

    Raises:
        ParseError: if the chunk is not a JSON array.
    """
    if isinstance(raw, str):
        try:
            elements = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON: {e}") from e
        nbytes = len(raw)
    else:
        elements = raw
        nbytes = len(json.dumps(raw, separators=(",", ":"))) if isinstance(raw, list) else 0
    if not isinstance(elements, list):
        raise ParseError("elementsChunk must be a JSON array of elements.")
    return elements, nbytes


class ChunkAssembler:
    """
    Accumulates a multi-call upload into one pending batch per view.

    The accumulator lives on the view itself (``View.pending_chunk``), so at
    most one upload per view can be in progress.
    """

    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_PENDING_BYTES,
        max_elements: int = DEFAULT_MAX_PENDING_ELEMENTS,
    ) -> None:
        self.max_bytes = max_bytes
        self.max_elements = max_elements

    def start(self, view: View) -> None:
        """Discard any pending upload and begin a fresh one."""
        if view.pending_chunk is not None:
            logger.debug("Discarding pending chunks for view %s", view.view_id)
        view.pending_chunk = PendingChunk()

    def append(self, view: View, elements: list[Element], nbytes: int) -> PendingTotals:
        """
        Append a chunk to the pending upload.

        Raises:
            NotFoundError: if no upload was started for the view.
            ResourceExceeded: if a ceiling is crossed; the pending upload is
                discarded and must be restarted.
        """
        pending = view.pending_chunk
        if pending is None:
            raise NotFoundError(
                f'No chunked update in progress for view "{view.view_id}". '
                "Send the first chunk with start=true.",
                {"viewId": view.view_id},
            )
        pending.elements.extend(elements)
        pending.total_bytes += nbytes
        totals = PendingTotals(pending.total_elements, pending.total_bytes)

        if totals.total_bytes > self.max_bytes or totals.total_elements > self.max_elements:
            view.pending_chunk = None
            raise ResourceExceeded(
                f"Chunked update exceeds limits ({totals.total_bytes} bytes, "
                f"{totals.total_elements} elements). Cleared pending chunks. "
                "Reduce chunk size or split into smaller diagrams.",
                {
                    **totals.to_dict(),
                    "maxBytes": self.max_bytes,
                    "maxElements": self.max_elements,
                },
            )
        return totals

    def consume(self, view: View) -> PendingChunk | None:
        """Detach and return the pending upload, clearing it from the view."""
        pending = view.pending_chunk
        view.pending_chunk = None
        return pending

    def totals(self, view: View) -> PendingTotals | None:
        pending = view.pending_chunk
        if pending is None:
            return None
        return PendingTotals(pending.total_elements, pending.total_bytes)
