"""
Diagram Sync Engine - live, checkpointed diagram state for agent-driven editing.

An agent builds a diagram through small edit scripts and deltas; the engine
resolves them against stored checkpoints and pushes complete element lists to
every subscribed renderer.

Example:
    from diagram_sync_engine import LiveViewHub, MemoryCheckpointStore

    hub = LiveViewHub(MemoryCheckpointStore())
    view = hub.create_view(title="Payments flow")
    hub.mark_image_access(view.view_id)

    first = await hub.update(
        view.view_id,
        [{"type": "restoreCheckpoint", "id": "none"}, {"id": "r1", "type": "rectangle"}],
    )
    await hub.update_delta(view.view_id, upsert_elements=[{"id": "r2", "type": "ellipse"}])
"""

from diagram_sync_engine.checkpoints import (
    CheckpointStore,
    FileCheckpointStore,
    MemoryCheckpointStore,
    new_checkpoint_id,
)
from diagram_sync_engine.chunks import ChunkAssembler
from diagram_sync_engine.config import SyncConfig
from diagram_sync_engine.errors import (
    NotFoundError,
    ParseError,
    PolicyViolation,
    PreconditionFailed,
    ResourceExceeded,
    StorageError,
    SyncError,
)
from diagram_sync_engine.hub import LiveViewHub, build_delta_script
from diagram_sync_engine.models import (
    Bounds,
    Checkpoint,
    ImageSnapshot,
    PendingChunk,
    PendingTotals,
    ResolveResult,
    Selection,
    SelectionState,
    UpdateResult,
    View,
)
from diagram_sync_engine.resolver import ElementResolver, parse_script
from diagram_sync_engine.selection import SelectionGuard
from diagram_sync_engine.transports import PushSink, QueueSubscriber

__version__ = "0.1.0"

__all__ = [
    # Core
    "LiveViewHub",
    "ElementResolver",
    "ChunkAssembler",
    "SelectionGuard",
    "build_delta_script",
    "parse_script",
    # Storage
    "CheckpointStore",
    "FileCheckpointStore",
    "MemoryCheckpointStore",
    "new_checkpoint_id",
    # Models
    "Bounds",
    "Checkpoint",
    "ImageSnapshot",
    "PendingChunk",
    "PendingTotals",
    "ResolveResult",
    "Selection",
    "SelectionState",
    "UpdateResult",
    "View",
    # Transports
    "PushSink",
    "QueueSubscriber",
    # Config
    "SyncConfig",
    # Errors
    "SyncError",
    "NotFoundError",
    "ParseError",
    "PolicyViolation",
    "PreconditionFailed",
    "ResourceExceeded",
    "StorageError",
]
