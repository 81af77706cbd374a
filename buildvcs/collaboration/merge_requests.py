"""MergeRequestTracker — proposals to integrate one branch into another.

Status moves ``open -> merged`` or ``open -> closed``; both are terminal.
Merging records metadata only: the caller supplies a commit it already
created on the target branch.
"""

from __future__ import annotations

import logging
from typing import Any

from buildvcs.errors import ConflictError, NotFoundError, ValidationError
from buildvcs.models import MR_CLOSED, MR_MERGED, MR_OPEN, MergeRequest, utc_now
from buildvcs.storage.database import VersionDatabase
from buildvcs.storage.rows import to_merge_request

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({"title", "description", "assigned_to", "status"})


class MergeRequestTracker:
    """Manage merge request workflows stored in the version database."""

    def __init__(self, db: VersionDatabase) -> None:
        self._db = db

    def create_merge_request(
        self,
        repository_id: str,
        source_branch_id: str,
        target_branch_id: str,
        title: str,
        description: str = "",
        *,
        user: str,
        assigned_to: str | None = None,
    ) -> MergeRequest:
        """Open a merge request from *source_branch_id* into *target_branch_id*.

        Both branches must belong to *repository_id* and must differ.
        """
        if not (title or "").strip():
            raise ValidationError("Merge request title is required", repository_id=repository_id)
        if source_branch_id == target_branch_id:
            raise ValidationError(
                "Source and target branch must differ",
                repository_id=repository_id,
                branch_id=source_branch_id,
            )

        with self._db.transaction():
            if self._db.get("repositories", repository_id) is None:
                raise NotFoundError(f"Repository {repository_id} not found", repository_id=repository_id)
            for branch_id in (source_branch_id, target_branch_id):
                row = self._db.get("branches", branch_id)
                if row is None or row["repository_id"] != repository_id:
                    raise ValidationError(
                        f"Branch {branch_id} does not belong to repository {repository_id}",
                        repository_id=repository_id,
                        branch_id=branch_id,
                    )

            mr = MergeRequest(
                repository_id=repository_id,
                source_branch_id=source_branch_id,
                target_branch_id=target_branch_id,
                title=title.strip(),
                description=description,
                created_by=user,
                assigned_to=assigned_to,
                created_at=utc_now(),
            )
            self._db.insert("merge_requests", mr.model_dump())

        logger.info(
            "Merge request %s opened: %s -> %s", mr.id, source_branch_id, target_branch_id,
        )
        return mr

    def get_merge_request(self, mr_id: str) -> MergeRequest:
        row = self._db.get("merge_requests", mr_id)
        if row is None:
            raise NotFoundError(f"Merge request {mr_id} not found", merge_request_id=mr_id)
        return to_merge_request(row)

    def get_merge_requests(
        self,
        repository_id: str,
        status: str | None = None,
    ) -> list[MergeRequest]:
        """Merge requests of the repository, newest first."""
        where: dict[str, Any] = {"repository_id": repository_id}
        if status is not None:
            where["status"] = status
        rows = self._db.find("merge_requests", where, order_by="created_at DESC, rowid DESC")
        return [to_merge_request(row) for row in rows]

    def update_merge_request(self, mr_id: str, **fields: Any) -> MergeRequest:
        """Edit an open merge request.

        Accepts ``title``, ``description``, ``assigned_to`` and
        ``status='closed'``.  Merging goes through :meth:`merge_request`.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update fields: {', '.join(sorted(unknown))}",
                merge_request_id=mr_id,
            )
        if "status" in fields and fields["status"] != MR_CLOSED:
            raise ValidationError(
                f"Status can only be changed to '{MR_CLOSED}' here",
                merge_request_id=mr_id,
                status=fields["status"],
            )
        if "title" in fields and not (fields["title"] or "").strip():
            raise ValidationError("Merge request title must not be blank", merge_request_id=mr_id)

        with self._db.transaction():
            if fields:
                self._apply_while_open(mr_id, dict(fields))
            else:
                self._require_open(self.get_merge_request(mr_id))
            mr = self.get_merge_request(mr_id)

        logger.info("Updated merge request %s: %s", mr_id, sorted(fields))
        return mr

    def close_merge_request(self, mr_id: str) -> MergeRequest:
        return self.update_merge_request(mr_id, status=MR_CLOSED)

    def merge_request(self, mr_id: str, merge_commit_id: str) -> MergeRequest:
        """Mark an open merge request as merged by *merge_commit_id*.

        The status check and the write are one conditional update, so a
        second call (or a race with close) raises :class:`ConflictError`
        and ``merged_at`` is only ever set once.
        """
        with self._db.transaction():
            mr = self.get_merge_request(mr_id)
            self._require_open(mr)
            commit = self._db.get("commits", merge_commit_id)
            if commit is None:
                raise NotFoundError(
                    f"Merge commit {merge_commit_id} not found",
                    merge_request_id=mr_id,
                    commit_id=merge_commit_id,
                )
            if commit["repository_id"] != mr.repository_id:
                raise ValidationError(
                    f"Merge commit {merge_commit_id} is not in repository {mr.repository_id}",
                    merge_request_id=mr_id,
                    commit_id=merge_commit_id,
                )
            self._apply_while_open(mr_id, {
                "status": MR_MERGED,
                "merge_commit_id": merge_commit_id,
                "merged_at": utc_now(),
            })
            mr = self.get_merge_request(mr_id)

        logger.info("Merge request %s merged at %s", mr_id, merge_commit_id)
        return mr

    # -- Internals ------------------------------------------------------------

    def _apply_while_open(self, mr_id: str, values: dict[str, Any]) -> None:
        changed = self._db.update_if("merge_requests", values, {"id": mr_id, "status": MR_OPEN})
        if changed == 0:
            self._require_open(self.get_merge_request(mr_id))

    @staticmethod
    def _require_open(mr: MergeRequest) -> None:
        if mr.is_terminal:
            raise ConflictError(
                f"Merge request {mr.id} is already {mr.status}",
                merge_request_id=mr.id,
                status=mr.status,
            )
