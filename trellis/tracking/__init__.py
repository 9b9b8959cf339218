"""Generation tracking: the file manifest, the pending relation queue and
the update planner that reconciles generated files with newer templates."""

from trellis.tracking.manifest import (
    FileCategory,
    FileRecord,
    Manifest,
    ManifestCorruptError,
    ManifestNotFoundError,
)
from trellis.tracking.relations import PendingRelation, QueueCorruptError
from trellis.tracking.updater import (
    ConflictResolution,
    UpdateItem,
    UpdatePlan,
    UpdateReport,
    UpdateStatus,
    apply_plan,
    initialize_baseline,
    plan_update,
)

__all__ = [
    "FileCategory",
    "FileRecord",
    "Manifest",
    "ManifestCorruptError",
    "ManifestNotFoundError",
    "PendingRelation",
    "QueueCorruptError",
    "ConflictResolution",
    "UpdateItem",
    "UpdatePlan",
    "UpdateReport",
    "UpdateStatus",
    "apply_plan",
    "initialize_baseline",
    "plan_update",
]
