"""Structural comparison of build snapshots.

Parts are matched by their stable ``id``; a part present on both sides is
*modified* when its content differs by deep equality.  Optimizations are
compared key by key, ignoring the editor's bookkeeping key.
"""

from __future__ import annotations

import logging
from typing import Any

from buildvcs.config import (
    FALLBACK_COMMIT_MESSAGE,
    OPTIMIZATION_BOOKKEEPING_KEY,
    SHORT_HASH_LENGTH,
)
from buildvcs.errors import NotFoundError
from buildvcs.models import ChangeSet, SnapshotPayload
from buildvcs.storage.database import VersionDatabase
from buildvcs.vcs.snapshots import SnapshotStore, canonical_json

logger = logging.getLogger(__name__)

_MISSING = object()


def _option(payload: SnapshotPayload, key: str) -> object:
    value = payload.optimization_data.get(key, _MISSING)
    return value if value is _MISSING else canonical_json(value)


def calculate_changes(old: SnapshotPayload, new: SnapshotPayload) -> ChangeSet:
    """Return the change-set turning *old* into *new*.

    ``added`` and ``modified`` hold the parts as they appear in *new*,
    ``removed`` the parts as they appeared in *old*, each in list order.
    Content is compared through its canonical JSON, so a value changing
    type (``1`` to ``true``) counts as a modification.
    """
    old_parts = {part["id"]: canonical_json(part) for part in old.parts_data}
    new_parts = {part["id"]: part for part in new.parts_data}

    added = [part for part in new.parts_data if part["id"] not in old_parts]
    removed = [part for part in old.parts_data if part["id"] not in new_parts]
    modified = [
        part for part in new.parts_data
        if part["id"] in old_parts and old_parts[part["id"]] != canonical_json(part)
    ]

    keys = (set(old.optimization_data) | set(new.optimization_data)) - {OPTIMIZATION_BOOKKEEPING_KEY}
    optimizations_changed = sorted(
        (key for key in keys if _option(old, key) != _option(new, key)), key=str,
    )

    return ChangeSet(
        added=added,
        removed=removed,
        modified=modified,
        optimizations_changed=optimizations_changed,
    )


def generate_commit_message(changes: ChangeSet | dict[str, Any]) -> str:
    """Render a change-set (or its :meth:`ChangeSet.counts`) as a summary line.

    Fragments always appear in the order added, removed, modified,
    optimizations, e.g. ``"Added 1 parts, Applied 2 optimizations"``.
    """
    counts = changes.counts() if isinstance(changes, ChangeSet) else changes
    fragments: list[str] = []
    if counts.get("added"):
        fragments.append(f"Added {counts['added']} parts")
    if counts.get("removed"):
        fragments.append(f"Removed {counts['removed']} parts")
    if counts.get("modified"):
        fragments.append(f"Modified {counts['modified']} parts")
    if counts.get("optimizations"):
        fragments.append(f"Applied {counts['optimizations']} optimizations")
    return ", ".join(fragments) if fragments else FALLBACK_COMMIT_MESSAGE


def format_commit_hash(commit_hash: str | None) -> str:
    """Shorten a commit hash for display."""
    return commit_hash[:SHORT_HASH_LENGTH] if commit_hash else ""


class DiffEngine:
    """Compare the snapshots of two stored commits."""

    def __init__(self, db: VersionDatabase, snapshots: SnapshotStore) -> None:
        self._db = db
        self._snapshots = snapshots

    def compare_commits(self, commit_id_a: str, commit_id_b: str) -> ChangeSet:
        """Return what changed going from commit *a* to commit *b*."""
        for commit_id in (commit_id_a, commit_id_b):
            if self._db.get("commits", commit_id) is None:
                raise NotFoundError(f"Commit {commit_id} not found", commit_id=commit_id)

        if commit_id_a == commit_id_b:
            return ChangeSet()

        old = self._snapshots.get(commit_id_a)
        new = self._snapshots.get(commit_id_b)
        changes = calculate_changes(old, new)
        logger.debug(
            "Compared %s..%s: %s", commit_id_a, commit_id_b, changes.counts(),
        )
        return changes
