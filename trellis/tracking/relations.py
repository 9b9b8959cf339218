"""Deferred relation queue.

When an entity declares a relation to an entity that has not been generated
yet, the relation is parked in ``.trellis/pending_relations.json`` and
replayed as soon as the target entity is generated.  The queue is an ordered
JSON list without duplicates; the file's absence means the queue is empty.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import BaseModel, TypeAdapter, ValidationError

from trellis.errors import TrellisError
from trellis.scaffolder.entity import RelationKind
from trellis.tracking.manifest import TRELLIS_DIR
from trellis.utils import save_json, snake_case

PENDING_FILENAME = "pending_relations.json"

# Generated entity models live here, one module per entity.
ENTITIES_DIR = "backend/app/models"


def pending_path(project_root: str | Path) -> Path:
    """Return ``<project_root>/.trellis/pending_relations.json``."""
    return Path(project_root) / TRELLIS_DIR / PENDING_FILENAME


class QueueCorruptError(TrellisError):
    """Raised when the pending-relations document cannot be parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"Pending relation queue at {path} is unreadable: {reason}")


class PendingRelation(BaseModel):
    """A relation whose target entity did not exist when it was declared."""

    source_entity: str
    target_entity: str
    relation_kind: RelationKind

    def key(self) -> tuple[str, str, RelationKind]:
        return (self.source_entity, self.target_entity, self.relation_kind)


_QUEUE_ADAPTER = TypeAdapter(list[PendingRelation])


# ---------------------------------------------------------------------------
# Queue operations
# ---------------------------------------------------------------------------


def load_pending(project_root: str | Path) -> list[PendingRelation]:
    """Load the queue; an absent file is an empty queue.

    Raises:
        QueueCorruptError: If the document is not a valid list of relations.
    """
    path = pending_path(project_root)
    if not path.exists():
        return []
    try:
        raw = path.read_text(encoding="utf-8")
    except (UnicodeDecodeError, OSError) as exc:
        raise QueueCorruptError(path, str(exc)) from exc
    try:
        return _QUEUE_ADAPTER.validate_json(raw)
    except ValidationError as exc:
        raise QueueCorruptError(path, str(exc)) from exc


def _save_pending(project_root: str | Path, relations: list[PendingRelation]) -> None:
    path = pending_path(project_root)
    if not relations:
        path.unlink(missing_ok=True)
        return
    save_json([rel.model_dump(mode="json") for rel in relations], path)


def store_pending(project_root: str | Path, relation: PendingRelation) -> bool:
    """Append *relation* unless an identical entry is already queued.

    Returns:
        ``True`` if the relation was added, ``False`` if it was a duplicate.
    """
    relations = load_pending(project_root)
    if any(existing.key() == relation.key() for existing in relations):
        return False
    relations.append(relation)
    _save_pending(project_root, relations)
    return True


def discard_pending(project_root: str | Path, relation: PendingRelation) -> bool:
    """Remove *relation* from the queue; ``False`` if it was not queued."""
    relations = load_pending(project_root)
    remaining = [rel for rel in relations if rel.key() != relation.key()]
    if len(remaining) == len(relations):
        return False
    _save_pending(project_root, remaining)
    return True


def take_pending_for(project_root: str | Path, target_entity: str) -> list[PendingRelation]:
    """Remove and return every queued relation targeting *target_entity*.

    Entity names are compared in snake_case, so ``BlogPost``, ``blog_post``
    and ``blog-post`` all match.  Only the remainder is written back; the
    document is deleted when nothing remains.
    """
    relations = load_pending(project_root)
    wanted = snake_case(target_entity)

    matched = [rel for rel in relations if snake_case(rel.target_entity) == wanted]
    if not matched:
        return []

    remaining = [rel for rel in relations if snake_case(rel.target_entity) != wanted]
    _save_pending(project_root, remaining)
    return matched


class Replay:
    """Relations taken for replay, plus which of them have been applied."""

    def __init__(self, relations: list[PendingRelation]) -> None:
        self.relations = relations
        self._done: set[tuple[str, str, RelationKind]] = set()

    def __iter__(self) -> Iterator[PendingRelation]:
        return iter(self.relations)

    def __len__(self) -> int:
        return len(self.relations)

    def mark_done(self, relation: PendingRelation) -> None:
        self._done.add(relation.key())

    @property
    def unfinished(self) -> list[PendingRelation]:
        return [rel for rel in self.relations if rel.key() not in self._done]


@contextmanager
def replaying(project_root: str | Path, target_entity: str) -> Iterator[Replay]:
    """Take the relations for *target_entity* and guard their replay.

    The caller calls ``replay.mark_done(rel)`` after each relation's file
    mutations succeed.  If the block raises, every relation not yet marked
    done is put back on the queue before the exception propagates.
    """
    replay = Replay(take_pending_for(project_root, target_entity))
    try:
        yield replay
    except BaseException:
        for relation in replay.unfinished:
            store_pending(project_root, relation)
        raise


# ---------------------------------------------------------------------------
# Entity discovery
# ---------------------------------------------------------------------------


def entity_module_path(project_root: str | Path, entity_name: str) -> Path:
    """Path of the generated model module for *entity_name*."""
    return Path(project_root) / ENTITIES_DIR / f"{snake_case(entity_name)}.py"


def entity_exists(project_root: str | Path, entity_name: str) -> bool:
    """Return ``True`` if the entity's model module has been generated."""
    return entity_module_path(project_root, entity_name).is_file()


def discover_entities(project_root: str | Path) -> list[str]:
    """List generated entity module names (snake_case), sorted."""
    models_dir = Path(project_root) / ENTITIES_DIR
    if not models_dir.is_dir():
        return []
    return sorted(
        path.stem
        for path in models_dir.glob("*.py")
        if path.stem != "__init__" and not path.stem.startswith("_")
    )


def junction_name(entity_a: str, entity_b: str) -> str:
    """Junction model name for two entities, ordered alphabetically.

    Example::

        junction_name("Tag", "Post") -> "post_tag"
    """
    a, b = sorted((snake_case(entity_a), snake_case(entity_b)))
    return f"{a}_{b}"
