"""SnapshotStore — immutable build states, one per commit."""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from buildvcs.errors import IntegrityError, NotFoundError, ValidationError
from buildvcs.models import Snapshot, SnapshotPayload, utc_now
from buildvcs.storage.database import VersionDatabase, dump_json, load_json
from buildvcs.vcs.hashing import Hasher

logger = logging.getLogger(__name__)


def coerce_payload(snapshot: SnapshotPayload | dict[str, Any] | None) -> SnapshotPayload:
    """Accept a payload model or a plain dict from the build editor."""
    if snapshot is None:
        return SnapshotPayload()
    if isinstance(snapshot, SnapshotPayload):
        return snapshot
    try:
        return SnapshotPayload.model_validate(snapshot)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid snapshot: {exc}", errors=exc.errors()) from exc


def canonical_json(value: Any) -> str:
    """Sorted-key compact JSON of any snapshot fragment.

    Unlike ``==``, this tells ``1`` and ``True`` apart.
    """
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def canonical_serialize(payload: SnapshotPayload) -> str:
    """Deterministic JSON for hashing.

    Object keys are sorted at every level; the order of ``parts_data`` is
    part of the state and is kept.
    """
    data = {
        "build_data": payload.build_data,
        "parts_data": payload.parts_data,
        "analysis_data": payload.analysis_data,
        "optimization_data": payload.optimization_data,
    }
    return canonical_json(data)


class SnapshotStore:
    """Content-addressed storage of build snapshots.

    Snapshots are written only together with their commit, inside the
    commit graph's transaction, and are never updated afterwards.
    """

    def __init__(self, db: VersionDatabase) -> None:
        self._db = db

    def save(self, commit_id: str, payload: SnapshotPayload) -> Snapshot:
        """Persist *payload* for *commit_id*.

        Must run inside an open transaction; a failed write raises
        :class:`IntegrityError` so the surrounding commit is rolled back.
        """
        if not self._db.in_transaction:
            raise IntegrityError(
                "Snapshots can only be saved together with their commit",
                commit_id=commit_id,
            )

        serialized = canonical_serialize(payload)
        snapshot = Snapshot(
            commit_id=commit_id,
            content_hash=Hasher.hash_string(serialized),
            build_data=payload.build_data,
            parts_data=payload.parts_data,
            analysis_data=payload.analysis_data,
            optimization_data=payload.optimization_data,
            created_at=utc_now(),
        )
        try:
            self._db.insert("snapshots", {
                "commit_id": snapshot.commit_id,
                "content_hash": snapshot.content_hash,
                "build_data": dump_json(snapshot.build_data),
                "parts_data": dump_json(snapshot.parts_data),
                "analysis_data": dump_json(snapshot.analysis_data),
                "optimization_data": dump_json(snapshot.optimization_data),
                "created_at": snapshot.created_at,
            })
        except sqlite3.Error as exc:
            raise IntegrityError(
                f"Snapshot for commit {commit_id} could not be stored: {exc}",
                commit_id=commit_id,
            ) from exc

        logger.debug("Stored snapshot %s for commit %s", snapshot.content_hash[:8], commit_id)
        return snapshot

    def find(self, commit_id: str) -> Snapshot | None:
        row = self._db.get("snapshots", commit_id, key="commit_id")
        if row is None:
            return None
        return Snapshot(
            commit_id=row["commit_id"],
            content_hash=row["content_hash"],
            build_data=load_json(row["build_data"], {}),
            parts_data=load_json(row["parts_data"], []),
            analysis_data=load_json(row["analysis_data"]),
            optimization_data=load_json(row["optimization_data"], {}),
            created_at=row["created_at"],
        )

    def get(self, commit_id: str) -> Snapshot:
        """Return the snapshot of *commit_id* or raise :class:`NotFoundError`."""
        snapshot = self.find(commit_id)
        if snapshot is None:
            raise NotFoundError(f"No snapshot for commit {commit_id}", commit_id=commit_id)
        return snapshot
