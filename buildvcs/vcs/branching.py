"""BranchManager — named, mutable pointers into the commit graph.

There is no "current branch": every call names the branch it works on,
and heads advance only through :meth:`CommitGraph.create_commit`.
"""

from __future__ import annotations

import logging

from buildvcs.config import REVERT_COMMIT_MESSAGE
from buildvcs.errors import (
    ConflictError,
    IntegrityError,
    NotFoundError,
    ValidationError,
)
from buildvcs.models import Branch, BranchCheckout, BranchSummary, Commit, utc_now
from buildvcs.storage.database import VersionDatabase
from buildvcs.storage.rows import to_branch
from buildvcs.vcs.commits import CommitGraph
from buildvcs.vcs.snapshots import SnapshotStore

logger = logging.getLogger(__name__)


class BranchManager:
    """Create, list, resolve and delete branches."""

    def __init__(self, db: VersionDatabase, graph: CommitGraph, snapshots: SnapshotStore) -> None:
        self._db = db
        self._graph = graph
        self._snapshots = snapshots

    def create_branch(
        self,
        repository_id: str,
        name: str,
        from_commit_id: str | None = None,
        description: str = "",
        *,
        user: str,
    ) -> Branch:
        """Create a branch pointing at *from_commit_id*.

        Parameters
        ----------
        name:
            Branch name, unique within the repository.
        from_commit_id:
            Starting commit.  Defaults to the default branch's current head.
        user:
            Creator id.

        Returns the created :class:`Branch`.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Branch name is required", repository_id=repository_id)

        with self._db.transaction():
            if self._db.get("repositories", repository_id) is None:
                raise NotFoundError(
                    f"Repository {repository_id} not found", repository_id=repository_id,
                )

            if from_commit_id is None:
                head = self.get_default_branch(repository_id).head_commit_id
            else:
                commit = self._graph.find_commit(from_commit_id)
                if commit is None:
                    raise NotFoundError(
                        f"Commit {from_commit_id} not found", commit_id=from_commit_id,
                    )
                if commit.repository_id != repository_id:
                    raise ValidationError(
                        "Cannot branch from a commit of another repository",
                        repository_id=repository_id,
                        commit_id=from_commit_id,
                    )
                head = from_commit_id

            branch = self.insert_branch(
                repository_id, name, head, description=description, user=user,
            )

        logger.info("Created branch '%s' at %s in repository %s", name, head, repository_id)
        return branch

    def insert_branch(
        self,
        repository_id: str,
        name: str,
        head_commit_id: str | None,
        *,
        description: str = "",
        is_default: bool = False,
        user: str,
    ) -> Branch:
        """Insert a branch row after checking name uniqueness."""
        existing = self._db.fetch_one(
            "SELECT id FROM branches WHERE repository_id = ? AND name = ?",
            (repository_id, name),
        )
        if existing is not None:
            raise ConflictError(
                f"Branch '{name}' already exists",
                repository_id=repository_id,
                branch_name=name,
                branch_id=existing["id"],
            )

        branch = Branch(
            repository_id=repository_id,
            name=name,
            description=description,
            is_default=is_default,
            head_commit_id=head_commit_id,
            created_by=user,
            created_at=utc_now(),
        )
        self._db.insert("branches", branch.model_dump())
        return branch

    # -- Reads ----------------------------------------------------------------

    def get_branch(self, branch_id: str) -> Branch:
        row = self._db.get("branches", branch_id)
        if row is None:
            raise NotFoundError(f"Branch {branch_id} not found", branch_id=branch_id)
        return to_branch(row)

    def get_branch_by_name(self, repository_id: str, name: str) -> Branch:
        row = self._db.fetch_one(
            "SELECT * FROM branches WHERE repository_id = ? AND name = ?",
            (repository_id, name),
        )
        if row is None:
            raise NotFoundError(
                f"Branch '{name}' not found",
                repository_id=repository_id,
                branch_name=name,
            )
        return to_branch(row)

    def get_default_branch(self, repository_id: str) -> Branch:
        row = self._db.fetch_one(
            "SELECT * FROM branches WHERE repository_id = ? AND is_default = 1",
            (repository_id,),
        )
        if row is None:
            raise IntegrityError(
                f"Repository {repository_id} has no default branch",
                repository_id=repository_id,
            )
        return to_branch(row)

    def list_branches(self, repository_id: str) -> list[Branch]:
        rows = self._db.find(
            "branches",
            {"repository_id": repository_id},
            order_by="created_at DESC, rowid DESC",
        )
        return [to_branch(row) for row in rows]

    def get_branches(self, repository_id: str) -> list[BranchSummary]:
        """Branches of the repository, newest first, with their head commit."""
        if self._db.get("repositories", repository_id) is None:
            raise NotFoundError(f"Repository {repository_id} not found", repository_id=repository_id)

        summaries = []
        for branch in self.list_branches(repository_id):
            head = self._graph.find_commit(branch.head_commit_id) if branch.head_commit_id else None
            summaries.append(BranchSummary(branch=branch, head_commit=head))
        return summaries

    def switch_branch(self, branch_id: str) -> BranchCheckout:
        """Resolve a branch with its head commit and snapshot.

        Read-only; nothing records the branch as "current".
        """
        branch = self.get_branch(branch_id)
        head: Commit | None = None
        snapshot = None
        if branch.head_commit_id is not None:
            head = self._graph.require_commit(branch.head_commit_id)
            snapshot = self._snapshots.find(head.id)
        logger.debug("Resolved branch '%s' at %s", branch.name, branch.head_commit_id)
        return BranchCheckout(branch=branch, head_commit=head, snapshot=snapshot)

    # -- Deletes / reverts ----------------------------------------------------

    def delete_branch(self, branch_id: str) -> None:
        """Delete a branch.  The commits it pointed to are kept."""
        with self._db.transaction():
            branch = self.get_branch(branch_id)
            if branch.is_default:
                raise ValidationError(
                    f"Cannot delete default branch '{branch.name}'",
                    branch_id=branch_id,
                    repository_id=branch.repository_id,
                )
            open_mr = self._db.fetch_one(
                "SELECT id FROM merge_requests WHERE status = 'open' "
                "AND (source_branch_id = ? OR target_branch_id = ?) LIMIT 1",
                (branch_id, branch_id),
            )
            if open_mr is not None:
                raise ConflictError(
                    f"Branch '{branch.name}' is used by open merge request {open_mr['id']}",
                    branch_id=branch_id,
                    merge_request_id=open_mr["id"],
                )
            self._db.delete("branches", {"id": branch_id})
        logger.info("Deleted branch '%s' (%s)", branch.name, branch_id)

    def revert_to_commit(
        self,
        repository_id: str,
        target_commit_id: str,
        new_branch_name: str,
        message: str = REVERT_COMMIT_MESSAGE,
        *,
        user: str,
    ) -> tuple[Branch, Commit]:
        """Restore an earlier build state on a new branch.

        The branch starts at the default branch's head and receives one
        commit whose snapshot equals *target_commit_id*'s.  Both are written
        in one transaction.
        """
        new_branch_name = (new_branch_name or "").strip()
        if not new_branch_name:
            raise ValidationError("Branch name is required", repository_id=repository_id)

        with self._db.transaction():
            target = self._graph.require_commit(target_commit_id, repository_id)
            payload = self._snapshots.get(target.id).payload()
            base = self.get_default_branch(repository_id).head_commit_id
            branch = self.insert_branch(
                repository_id,
                new_branch_name,
                base,
                description=f"Revert to {target.short_hash}",
                user=user,
            )
            commit = self._graph.append_commit(
                repository_id, branch.id, base, message, payload, author=user,
            )
            branch.head_commit_id = commit.id

        logger.info(
            "Reverted repository %s to %s on branch '%s'",
            repository_id, target.short_hash, new_branch_name,
        )
        return branch, commit
