"""
LiveViewHub - registry of live diagram views.

The hub owns every :class:`View` in a table keyed by view id. Mutating calls
(plain, chunked-final and delta updates) all run through the same pipeline:

1. the view must exist (``NotFoundError``);
2. a renderer image must have been fetched (``PreconditionFailed``);
3. an active selection must be acknowledged with contained ``editBounds``;
4. ``replaceAll`` requires the view's replace-all unlock;
5. without ``replaceAll`` the script must restore a checkpoint;
6. the script is resolved against the checkpoint store;
7. the result is saved as a new checkpoint, installed, and pushed.

A failing step leaves the view untouched: nothing is installed or pushed.

Example:
    from diagram_sync_engine import LiveViewHub, MemoryCheckpointStore

    hub = LiveViewHub(MemoryCheckpointStore(), base_url="http://localhost:3002")
    view = hub.create_view(title="Architecture")
    hub.mark_image_access(view.view_id)
    result = await hub.update(
        view.view_id,
        '[{"type":"restoreCheckpoint","id":"none"},{"id":"r1","type":"rectangle"}]',
    )
"""

from __future__ import annotations

import base64
import binascii
import sqlite3
from typing import TYPE_CHECKING, Any

from diagram_sync_engine.checkpoints import CheckpointStore, new_checkpoint_id
from diagram_sync_engine.chunks import ChunkAssembler, decode_chunk
from diagram_sync_engine.config import SyncConfig
from diagram_sync_engine.errors import (
    NotFoundError,
    ParseError,
    PolicyViolation,
    PreconditionFailed,
    SyncError,
)
from diagram_sync_engine.logging import get_logger
from diagram_sync_engine.models import (
    CLOSED_EVENT,
    DELETE,
    META_EVENT,
    RESTORE_CHECKPOINT,
    UPDATE_EVENT,
    Bounds,
    Element,
    ImageSnapshot,
    PendingTotals,
    Selection,
    UpdateResult,
    View,
    new_token,
    utc_now,
)
from diagram_sync_engine.resolver import ElementResolver, has_restore, parse_script
from diagram_sync_engine.selection import SelectionGuard
from diagram_sync_engine.transports.base import PushSink
from diagram_sync_engine.transports.sse import QueueSubscriber

if TYPE_CHECKING:
    from diagram_sync_engine.web.storage import ViewSessionStorage

logger = get_logger("hub")

LARGE_PAYLOAD_WARNING = "large-payload"


class LiveViewHub:
    """
    Registry of views, their latest resolved state, and their subscribers.

    All state lives on the event loop; the only suspension points are
    checkpoint persistence calls. Two concurrent updates to the same view
    are last-committed-wins.
    """

    def __init__(
        self,
        store: CheckpointStore,
        base_url: str = "http://localhost:0",
        storage: ViewSessionStorage | None = None,
        chunks: ChunkAssembler | None = None,
        guard: SelectionGuard | None = None,
        large_payload_chars: int = 20_000,
        subscriber_queue_size: int = 64,
    ) -> None:
        self.store = store
        self.resolver = ElementResolver(store)
        self.chunks = chunks or ChunkAssembler()
        self.guard = guard or SelectionGuard()
        self.large_payload_chars = large_payload_chars
        self.subscriber_queue_size = subscriber_queue_size
        self._storage = storage
        self._base_url = base_url.rstrip("/")
        self._views: dict[str, View] = {}

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        store: CheckpointStore,
        storage: ViewSessionStorage | None = None,
    ) -> LiveViewHub:
        """Build a hub with ceilings and limits taken from *config*."""
        return cls(
            store,
            base_url=config.resolved_base_url(),
            storage=storage,
            chunks=ChunkAssembler(config.max_pending_bytes, config.max_pending_elements),
            large_payload_chars=config.large_payload_chars,
            subscriber_queue_size=config.subscriber_queue_size,
        )

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_base_url(self, url: str) -> None:
        """Change the base URL; existing view URLs follow."""
        self._base_url = url.rstrip("/")
        for view in self._views.values():
            view.url = self.view_url(view.view_id)

    def view_url(self, view_id: str) -> str:
        return f"{self._base_url}/view/{view_id}"

    def has_view(self, view_id: str) -> bool:
        return view_id in self._views

    def get_view(self, view_id: str) -> View:
        """Return the view or raise :class:`NotFoundError`."""
        view = self._views.get(view_id)
        if view is None:
            raise NotFoundError(
                f'Unknown view id: "{view_id}". Create a view first.',
                {"viewId": view_id},
            )
        return view

    def create_view(
        self,
        title: str | None = None,
        description: str | None = None,
        skin: str | None = None,
    ) -> View:
        """Allocate a new view and persist its metadata."""
        view_id = new_token()
        view = View(
            view_id=view_id,
            url=self.view_url(view_id),
            title=title,
            description=description,
            skin=skin,
        )
        self._views[view_id] = view
        self._persist(view)
        logger.info("Created view %s", view_id)
        return view

    def list_views(self) -> list[dict[str, Any]]:
        """Metadata for every view, most recently updated first."""
        summaries = [view.summary() for view in self._views.values()]
        summaries.sort(key=lambda s: s.get("updatedAt") or "", reverse=True)
        return summaries

    def update_view_meta(
        self,
        view_id: str,
        title: str | None = None,
        description: str | None = None,
        skin: str | None = None,
    ) -> View:
        """Change cosmetic metadata; ``None`` leaves a field unchanged."""
        view = self.get_view(view_id)
        if title is not None:
            view.title = title
        if description is not None:
            view.description = description
        if skin is not None:
            view.skin = skin
        view.updated_at = utc_now()
        self._persist(view)
        self._broadcast(view, META_EVENT, view.meta())
        return view

    def close_view(self, view_id: str) -> None:
        """Disconnect subscribers with a ``closed`` event and destroy the view."""
        view = self.get_view(view_id)
        for subscriber in list(view.subscribers):
            subscriber.offer(CLOSED_EVENT, {"viewId": view_id})
            subscriber.close()
        view.subscribers.clear()
        del self._views[view_id]
        if self._storage is not None:
            try:
                self._storage.delete_view(view_id)
            except sqlite3.Error as e:
                logger.warning("Failed to delete session metadata for %s: %s", view_id, e)
        logger.info("Closed view %s", view_id)

    def restore_sessions(self) -> int:
        """Re-register views whose metadata was persisted. Returns the count."""
        if self._storage is None:
            return 0
        restored = 0
        for record in self._storage.list_views():
            view_id = record["viewId"]
            if view_id in self._views:
                continue
            self._views[view_id] = View(
                view_id=view_id,
                url=self.view_url(view_id),
                title=record.get("title"),
                description=record.get("description"),
                skin=record.get("skin"),
                last_checkpoint_id=record.get("lastCheckpointId"),
                created_at=record.get("createdAt") or utc_now(),
                updated_at=record.get("updatedAt") or utc_now(),
            )
            restored += 1
        if restored:
            logger.info("Restored %d view(s) from session storage", restored)
        return restored

    def close(self) -> None:
        """Disconnect every subscriber; view state and metadata are kept."""
        for view in self._views.values():
            for subscriber in list(view.subscribers):
                subscriber.close()
            view.subscribers.clear()

    # ------------------------------------------------------------------
    # Selection and guards
    # ------------------------------------------------------------------

    def get_selection(self, view_id: str) -> Selection | None:
        return self.guard.get(self.get_view(view_id))

    def set_selection(
        self,
        view_id: str,
        bounds: Bounds,
        png_base64: str | None = None,
        updated_at: str | None = None,
    ) -> Selection:
        """Install a renderer-reported selection; *updated_at* defaults to now."""
        return self.guard.set(self.get_view(view_id), bounds, png_base64, updated_at)

    def clear_selection(self, view_id: str) -> None:
        self.guard.clear(self.get_view(view_id))

    def set_allow_replace_all(self, view_id: str, allow: bool) -> None:
        view = self.get_view(view_id)
        view.allow_replace_all = allow
        logger.info("replaceAll %s for view %s", "enabled" if allow else "disabled", view_id)

    def get_checkpoint_id(self, view_id: str) -> str | None:
        return self.get_view(view_id).last_checkpoint_id

    # ------------------------------------------------------------------
    # Render artifacts
    # ------------------------------------------------------------------

    def mark_image_access(self, view_id: str) -> None:
        self.get_view(view_id).last_image_access_at = utc_now()

    def get_image(self, view_id: str) -> ImageSnapshot:
        """Return cached render artifacts and stamp the freshness gate."""
        view = self.get_view(view_id)
        view.last_image_access_at = utc_now()
        return ImageSnapshot(
            view_id=view_id,
            svg=view.last_svg,
            png_base64=base64.b64encode(view.last_png).decode("ascii") if view.last_png else None,
            updated_at=view.updated_at,
        )

    def export_urls(self, view_id: str) -> dict[str, str]:
        """Direct export URLs; fetching them counts as an image access."""
        self.mark_image_access(view_id)
        url = self.view_url(view_id)
        return {"svgUrl": f"{url}/export.svg", "pngUrl": f"{url}/export.png"}

    def set_cache(
        self,
        view_id: str,
        svg: str | None = None,
        png_base64: str | None = None,
    ) -> None:
        """Store render artifacts reported by a viewer."""
        view = self.get_view(view_id)
        if png_base64 is not None:
            try:
                png = base64.b64decode(png_base64, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ParseError(f"pngBase64 is not valid base64: {e}") from e
            view.last_png = png
        if svg is not None:
            view.last_svg = svg

    # ------------------------------------------------------------------
    # Mutating updates
    # ------------------------------------------------------------------

    async def update(
        self,
        view_id: str,
        elements: str | list[Any],
        selection_ack: bool = False,
        edit_bounds: Bounds | dict[str, Any] | None = None,
        replace_all: bool = False,
    ) -> UpdateResult:
        """Apply a full edit script to a view."""
        try:
            view = self.get_view(view_id)
            self._check_gates(view, selection_ack, edit_bounds, replace_all)
            items = self._parse(view, parse_script, elements)
            result = await self._commit(view, items, replace_all)
        except SyncError as e:
            logger.debug("Rejected update for view %s: %s", view_id, e.kind)
            raise
        if isinstance(elements, str) and len(elements) > self.large_payload_chars:
            result.size_warning = LARGE_PAYLOAD_WARNING
        return result

    async def update_chunked(
        self,
        view_id: str,
        elements_chunk: str | list[Any],
        start: bool = False,
        final: bool = False,
        selection_ack: bool = False,
        edit_bounds: Bounds | dict[str, Any] | None = None,
        replace_all: bool = False,
    ) -> PendingTotals | UpdateResult:
        """
        Append one chunk of an edit script; commit it on ``final``.

        Returns the pending totals for non-final chunks and the committed
        update for the final one. The accumulator is cleared on every final
        call whether or not the commit succeeds.
        """
        try:
            view = self.get_view(view_id)
            if start:
                self.chunks.start(view)
            chunk, nbytes = self._parse(view, decode_chunk, elements_chunk)
            totals = self.chunks.append(view, chunk, nbytes)
            if not final:
                return totals

            pending = self.chunks.consume(view)
            self._check_gates(view, selection_ack, edit_bounds, replace_all)
            if pending is None or not pending.elements:
                raise PreconditionFailed("No pending chunks to commit.", {"viewId": view_id})
            return await self._commit(view, pending.elements, replace_all)
        except SyncError as e:
            logger.debug("Rejected chunked update for view %s: %s", view_id, e.kind)
            raise

    async def update_delta(
        self,
        view_id: str,
        upsert_elements: list[Element] | None = None,
        delete_ids: list[str] | None = None,
        selection_ack: bool = False,
        edit_bounds: Bounds | dict[str, Any] | None = None,
    ) -> UpdateResult:
        """
        Apply upserts and deletes against the view's last checkpoint.

        Upserted elements replace any existing element with the same id.
        """
        try:
            view = self.get_view(view_id)
            self._check_gates(view, selection_ack, edit_bounds, replace_all=False)
            baseline = view.last_checkpoint_id
            if not baseline:
                raise PreconditionFailed(
                    f'No checkpoint found for view "{view_id}". '
                    "Run a full update once to establish a baseline.",
                    {"viewId": view_id, "checkpointId": None},
                )
            upserts = list(upsert_elements or [])
            deletes = list(delete_ids or [])
            for delete_id in deletes:
                if not isinstance(delete_id, str) or "," in delete_id:
                    raise ParseError(
                        f"deleteIds must be strings without commas, got {delete_id!r}.",
                        self._state_details(view),
                    )
            if not upserts and not deletes:
                raise ParseError(
                    "No changes provided. Supply upsertElements and/or deleteIds.",
                    self._state_details(view),
                )
            script = build_delta_script(baseline, upserts, deletes)
            return await self._commit(view, script, replace_all=False)
        except SyncError as e:
            logger.debug("Rejected delta update for view %s: %s", view_id, e.kind)
            raise

    @staticmethod
    def _state_details(view: View) -> dict[str, Any]:
        return {"viewId": view.view_id, "checkpointId": view.last_checkpoint_id}

    def _parse(self, view: View, decode: Any, raw: Any) -> Any:
        """Run *decode* on *raw*, tagging a ParseError with the view's state."""
        try:
            return decode(raw)
        except ParseError as e:
            e.details = {**self._state_details(view), **e.details}
            raise

    def _check_gates(
        self,
        view: View,
        selection_ack: bool,
        edit_bounds: Bounds | dict[str, Any] | None,
        replace_all: bool,
    ) -> None:
        if view.last_image_access_at is None:
            raise PreconditionFailed(
                f'No rendered image fetched yet for view "{view.view_id}". '
                "Fetch the view image first, then retry.",
                self._state_details(view),
            )
        self.guard.check(view, selection_ack, edit_bounds)
        if replace_all and not view.allow_replace_all:
            raise PolicyViolation(
                f'replaceAll is blocked for view "{view.view_id}" to prevent accidental wipes. '
                "Enable it with allow_replace_all first.",
                self._state_details(view),
            )

    async def _commit(self, view: View, items: list[Any], replace_all: bool) -> UpdateResult:
        if not replace_all and not has_restore(items):
            raise PolicyViolation(
                "This update would overwrite the entire diagram. Include "
                '{"type":"restoreCheckpoint","id":"<checkpointId>"} first to preserve existing '
                "elements, or set replaceAll=true.",
                self._state_details(view),
            )

        result = await self.resolver.resolve(items)
        checkpoint_id = new_checkpoint_id()
        await self.store.save(checkpoint_id, result.resolved_elements)

        # The view may have been closed while the checkpoint was being saved.
        if self._views.get(view.view_id) is not view:
            raise NotFoundError(
                f'View "{view.view_id}" was closed during the update.',
                {"viewId": view.view_id, "checkpointId": checkpoint_id},
            )

        self._install(view, result.resolved_elements, checkpoint_id)
        return UpdateResult(
            view_id=view.view_id,
            checkpoint_id=checkpoint_id,
            element_count=len(result.resolved_elements),
            ratio_hint=result.ratio_hint,
        )

    def _install(self, view: View, elements: list[Element], checkpoint_id: str) -> None:
        payload = {"elements": elements, "checkpointId": checkpoint_id}
        view.last_payload = payload
        view.last_checkpoint_id = checkpoint_id
        view.updated_at = utc_now()
        self._persist(view)
        self._broadcast(view, UPDATE_EVENT, payload)
        logger.info(
            "Installed checkpoint %s on view %s (%d elements)",
            checkpoint_id,
            view.view_id,
            len(elements),
        )

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    async def subscribe(self, view_id: str) -> QueueSubscriber:
        """
        Register a renderer connection and replay the current state to it.

        If the latest payload is not cached (e.g. after a restart) it is
        loaded from the checkpoint store.
        """
        view = self.get_view(view_id)
        subscriber = QueueSubscriber(view_id, self.subscriber_queue_size)
        view.subscribers.add(subscriber)

        if view.last_payload is not None:
            subscriber.offer(UPDATE_EVENT, view.last_payload)
        elif view.last_checkpoint_id:
            checkpoint_id = view.last_checkpoint_id
            checkpoint = await self.store.load(checkpoint_id)
            # A newer update during the load has already been pushed.
            if (
                checkpoint is not None
                and view.last_payload is None
                and view.last_checkpoint_id == checkpoint_id
            ):
                payload = {"elements": list(checkpoint.elements), "checkpointId": checkpoint_id}
                view.last_payload = payload
                subscriber.offer(UPDATE_EVENT, payload)

        logger.debug("Subscriber attached to view %s (%d total)", view_id, len(view.subscribers))
        return subscriber

    def unsubscribe(self, view_id: str, subscriber: PushSink) -> None:
        view = self._views.get(view_id)
        if view is not None:
            view.subscribers.discard(subscriber)
        subscriber.close()

    def _broadcast(self, view: View, event: str, data: Any) -> None:
        for subscriber in list(view.subscribers):
            if not subscriber.offer(event, data):
                view.subscribers.discard(subscriber)
                subscriber.close()
                logger.warning("Dropped unresponsive subscriber on view %s", view.view_id)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self, view: View) -> None:
        if self._storage is None:
            return
        try:
            self._storage.save_view(view.session_record())
        except sqlite3.Error as e:
            logger.warning("Failed to persist session metadata for %s: %s", view.view_id, e)


def build_delta_script(
    baseline_checkpoint_id: str,
    upsert_elements: list[Element],
    delete_ids: list[str],
) -> list[Any]:
    """
    Synthesize ``[restoreCheckpoint, delete(ids), *upserts]`` for a delta.

    The delete list is the ordered union of *delete_ids* and the ids of the
    upserted elements.
    """
    ids: dict[str, None] = dict.fromkeys(delete_ids)
    for element in upsert_elements:
        if isinstance(element, dict) and isinstance(element.get("id"), str):
            ids[element["id"]] = None

    script: list[Any] = [{"type": RESTORE_CHECKPOINT, "id": baseline_checkpoint_id}]
    if ids:
        script.append({"type": DELETE, "ids": ",".join(ids)})
    script.extend(upsert_elements)
    return script
