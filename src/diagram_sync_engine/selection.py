"""
Selection guardrail.

A renderer-drawn selection acts as a soft lock: while one is active every
mutating call must acknowledge it and declare an edit area inside it. Only
the declared ``editBounds`` are checked, never element geometry.
"""

from __future__ import annotations

from typing import Any

from diagram_sync_engine.errors import PolicyViolation
from diagram_sync_engine.logging import get_logger
from diagram_sync_engine.models import Bounds, Selection, SelectionState, View, utc_now

logger = get_logger("selection")


class SelectionGuard:
    """Per-view NoSelection / SelectionActive state machine."""

    def state(self, view: View) -> SelectionState:
        if view.selection is None:
            return SelectionState.NO_SELECTION
        return SelectionState.SELECTION_ACTIVE

    def get(self, view: View) -> Selection | None:
        return view.selection

    def set(
        self,
        view: View,
        bounds: Bounds,
        png_base64: str | None = None,
        updated_at: str | None = None,
    ) -> Selection:
        """Install a new selection, replacing any previous one."""
        selection = Selection(bounds=bounds, png_base64=png_base64, updated_at=updated_at or utc_now())
        view.selection = selection
        logger.debug("Selection set for view %s: %s", view.view_id, bounds.to_dict())
        return selection

    def clear(self, view: View) -> None:
        view.selection = None

    def check(
        self,
        view: View,
        selection_ack: bool = False,
        edit_bounds: Bounds | dict[str, Any] | None = None,
    ) -> None:
        """
        Enforce the selection contract for a mutating call.

        A no-op while no selection is active.

        Raises:
            PolicyViolation: when the selection is not acknowledged, no edit
                bounds are given, or the edit bounds leave the selection.
        """
        selection = view.selection
        if selection is None:
            return

        sel = selection.bounds.to_dict()
        if not selection_ack:
            raise PolicyViolation(
                f'Selection is active for view "{view.view_id}". You must edit only within '
                "the selected bounds. Re-run the update with selectionAck=true and editBounds.",
                {"selection": sel},
            )

        if edit_bounds is None:
            raise PolicyViolation(
                f'Selection is active for view "{view.view_id}". Provide editBounds '
                "(x, y, width, height) and keep edits within the selection.",
                {"selection": sel},
            )

        bounds = edit_bounds if isinstance(edit_bounds, Bounds) else Bounds.from_dict(edit_bounds)
        if bounds is None:
            raise PolicyViolation(
                "editBounds must have numeric x, y, width and height.",
                {"selection": sel, "editBounds": edit_bounds},
            )

        if not selection.bounds.contains(bounds):
            raise PolicyViolation(
                f'editBounds is outside the active selection for view "{view.view_id}". '
                "Limit edits to the selected region and retry with editBounds fully inside it.",
                {"selection": sel, "editBounds": bounds.to_dict()},
            )
