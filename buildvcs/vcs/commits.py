"""CommitGraph — append-only commit chains and compare-and-swap branch heads.

A branch head only ever moves through :meth:`CommitGraph.create_commit`:
the caller names the head it built on (``expected_parent_commit_id``) and
the new commit, its snapshot and the head update are written in a single
transaction only if the branch still points there.  Otherwise nothing is
written and :class:`~buildvcs.errors.ConflictError` is raised; reloading
and resubmitting is the caller's decision.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from buildvcs.config import DEFAULT_HISTORY_LIMIT, INITIAL_COMMIT_MESSAGE, MAX_HISTORY_LIMIT
from buildvcs.errors import (
    ConflictError,
    IntegrityError,
    NotFoundError,
    ValidationError,
)
from buildvcs.models import Commit, CommitDetail, SnapshotPayload, utc_now
from buildvcs.storage.database import VersionDatabase, dump_json
from buildvcs.storage.rows import to_commit
from buildvcs.vcs.diff import calculate_changes, generate_commit_message
from buildvcs.vcs.hashing import Hasher
from buildvcs.vcs.snapshots import SnapshotStore, canonical_serialize, coerce_payload

logger = logging.getLogger(__name__)

AuthorResolver = Callable[[str], Optional[str]]
"""Maps an opaque user id to a display name (or ``None`` if unknown)."""


def compute_commit_hash(
    parent_commit_id: str | None,
    message: str,
    payload: SnapshotPayload,
) -> str:
    """Deterministic hash of parent id, message and canonical snapshot."""
    return Hasher.hash_fields(parent_commit_id or "", message, canonical_serialize(payload))


class CommitGraph:
    """Create and read commits.

    Parameters
    ----------
    db:
        The version database.
    snapshots:
        Snapshot store sharing *db*.
    author_resolver:
        Optional identity lookup used by :meth:`get_commit` to attach
        display names.
    """

    def __init__(
        self,
        db: VersionDatabase,
        snapshots: SnapshotStore,
        author_resolver: AuthorResolver | None = None,
    ) -> None:
        self._db = db
        self._snapshots = snapshots
        self._resolve_author = author_resolver

    # -- Writes ---------------------------------------------------------------

    def create_commit(
        self,
        repository_id: str,
        branch_id: str,
        expected_parent_commit_id: str | None,
        message: str | None,
        snapshot: SnapshotPayload | dict[str, Any] | None,
        *,
        author: str,
        committer: str | None = None,
    ) -> Commit:
        """Append a commit to *branch_id* if its head is still the expected one.

        Parameters
        ----------
        expected_parent_commit_id:
            The head the caller built *snapshot* on.  If the branch has moved
            since, :class:`ConflictError` is raised and nothing is written.
        message:
            Commit message.  Generated from the change-set against the
            parent snapshot if *None*.
        author, committer:
            Opaque user ids; *committer* defaults to *author*.

        Returns the created :class:`Commit`.
        """
        if not author:
            raise ValidationError("Commit author is required", branch_id=branch_id)
        if message is not None and not message.strip():
            raise ValidationError("Commit message must not be blank", branch_id=branch_id)
        payload = coerce_payload(snapshot)

        with self._db.transaction():
            branch = self._db.get("branches", branch_id)
            if branch is None:
                raise NotFoundError(f"Branch {branch_id} not found", branch_id=branch_id)
            if branch["repository_id"] != repository_id:
                raise ValidationError(
                    f"Branch {branch_id} does not belong to repository {repository_id}",
                    repository_id=repository_id,
                    branch_id=branch_id,
                )
            if branch["head_commit_id"] != expected_parent_commit_id:
                raise ConflictError(
                    f"Branch '{branch['name']}' has moved: expected head "
                    f"{expected_parent_commit_id}, found {branch['head_commit_id']}",
                    repository_id=repository_id,
                    branch_id=branch_id,
                    expected_parent_commit_id=expected_parent_commit_id,
                    actual_head_commit_id=branch["head_commit_id"],
                )
            return self.append_commit(
                repository_id,
                branch_id,
                expected_parent_commit_id,
                message,
                payload,
                author=author,
                committer=committer,
            )

    def create_initial_commit(self, repository_id: str, branch_id: str, *, user: str) -> Commit:
        """Root commit with an empty snapshot; runs in the caller's transaction."""
        return self.append_commit(
            repository_id,
            branch_id,
            None,
            INITIAL_COMMIT_MESSAGE,
            SnapshotPayload(),
            author=user,
        )

    def append_commit(
        self,
        repository_id: str,
        branch_id: str,
        parent_commit_id: str | None,
        message: str | None,
        payload: SnapshotPayload,
        *,
        author: str,
        committer: str | None = None,
    ) -> Commit:
        """Insert commit + snapshot and swing the branch head.

        Must run inside an open transaction.  The head update is
        conditional on the branch still pointing at *parent_commit_id*.
        """
        if not self._db.in_transaction:
            raise IntegrityError(
                "Commits can only be appended inside a transaction",
                branch_id=branch_id,
            )

        if parent_commit_id is not None:
            parent = self._db.get("commits", parent_commit_id)
            if parent is None:
                raise NotFoundError(
                    f"Parent commit {parent_commit_id} not found",
                    commit_id=parent_commit_id,
                )
            if parent["repository_id"] != repository_id:
                raise ValidationError(
                    "Parent commit belongs to another repository",
                    repository_id=repository_id,
                    commit_id=parent_commit_id,
                )
            base = self._snapshots.get(parent_commit_id)
        else:
            base = SnapshotPayload()

        changes = calculate_changes(base, payload)
        if message is None:
            message = generate_commit_message(changes)

        commit = Commit(
            repository_id=repository_id,
            branch_id=branch_id,
            parent_commit_id=parent_commit_id,
            commit_hash=compute_commit_hash(parent_commit_id, message, payload),
            author_id=author,
            committer_id=committer or author,
            message=message,
            changes=changes.counts(),
            created_at=utc_now(),
        )
        self._db.insert("commits", {
            "id": commit.id,
            "repository_id": commit.repository_id,
            "branch_id": commit.branch_id,
            "parent_commit_id": commit.parent_commit_id,
            "commit_hash": commit.commit_hash,
            "author_id": commit.author_id,
            "committer_id": commit.committer_id,
            "message": commit.message,
            "changes": dump_json(commit.changes),
            "created_at": commit.created_at,
        })
        self._snapshots.save(commit.id, payload)

        swapped = self._db.update_if(
            "branches",
            {"head_commit_id": commit.id},
            {"id": branch_id, "head_commit_id": parent_commit_id},
        )
        if swapped != 1:
            raise ConflictError(
                f"Branch {branch_id} head is no longer {parent_commit_id}",
                branch_id=branch_id,
                expected_parent_commit_id=parent_commit_id,
            )

        logger.info(
            "Committed %s on branch %s (parent %s): %s",
            commit.short_hash, branch_id, parent_commit_id, message,
        )
        return commit

    # -- Reads ----------------------------------------------------------------

    def find_commit(self, commit_id: str) -> Commit | None:
        row = self._db.get("commits", commit_id)
        return to_commit(row) if row is not None else None

    def require_commit(self, commit_id: str, repository_id: str | None = None) -> Commit:
        """Return the commit or raise :class:`NotFoundError`.

        With *repository_id*, a commit from another repository counts as
        missing.
        """
        commit = self.find_commit(commit_id)
        if commit is None or (repository_id is not None and commit.repository_id != repository_id):
            raise NotFoundError(
                f"Commit {commit_id} not found",
                commit_id=commit_id,
                repository_id=repository_id,
            )
        return commit

    def get_commit(self, commit_id: str) -> CommitDetail:
        """Return the commit with its snapshot and author display names."""
        commit = self.require_commit(commit_id)
        author_name = committer_name = None
        if self._resolve_author is not None:
            author_name = self._resolve_author(commit.author_id)
            committer_name = self._resolve_author(commit.committer_id)
        return CommitDetail(
            commit=commit,
            snapshot=self._snapshots.find(commit_id),
            author_name=author_name,
            committer_name=committer_name,
        )

    def get_commit_history(
        self,
        repository_id: str,
        branch_name: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[Commit]:
        """Walk back from the head of *branch_name*, newest first.

        At most *limit* commits are returned (capped at
        ``MAX_HISTORY_LIMIT``).  A branch without a head yields ``[]``.
        """
        if limit < 1:
            raise ValidationError("History limit must be positive", limit=limit)
        limit = min(limit, MAX_HISTORY_LIMIT)

        branch = self._db.fetch_one(
            "SELECT * FROM branches WHERE repository_id = ? AND name = ?",
            (repository_id, branch_name),
        )
        if branch is None:
            raise NotFoundError(
                f"Branch '{branch_name}' not found",
                repository_id=repository_id,
                branch_name=branch_name,
            )
        return self.walk_ancestry(repository_id, branch["head_commit_id"], limit)

    def walk_ancestry(
        self,
        repository_id: str,
        start_commit_id: str | None,
        limit: int,
    ) -> list[Commit]:
        """Follow ``parent_commit_id`` links from *start_commit_id*."""
        history: list[Commit] = []
        seen: set[str] = set()
        current = start_commit_id
        while current is not None and len(history) < limit:
            if current in seen:
                raise IntegrityError(
                    "Commit ancestry contains a cycle",
                    repository_id=repository_id,
                    commit_id=current,
                )
            seen.add(current)
            row = self._db.get("commits", current)
            if row is None:
                raise IntegrityError(
                    f"Ancestry references missing commit {current}",
                    repository_id=repository_id,
                    commit_id=current,
                )
            commit = to_commit(row)
            if commit.repository_id != repository_id:
                raise IntegrityError(
                    "Ancestry crosses repositories",
                    repository_id=repository_id,
                    commit_id=current,
                )
            history.append(commit)
            current = commit.parent_commit_id
        return history

    def recent_commits(self, repository_id: str, limit: int) -> list[Commit]:
        """All commits of the repository, newest first, regardless of branch."""
        rows = self._db.find(
            "commits",
            {"repository_id": repository_id},
            order_by="created_at DESC, rowid DESC",
            limit=limit,
        )
        return [to_commit(row) for row in rows]
