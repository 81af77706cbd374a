"""BuildVCS — the single entry point for versioning build configurations.

Usage::

    from buildvcs import BuildVCS

    vcs = BuildVCS("builds.db")
    repo = vcs.create_repository("build-42", "Race quad", user="alice")
    main = vcs.get_branch_by_name(repo.id, "main")
    feature = vcs.create_branch(repo.id, "feature", main.head_commit_id, user="alice")
    commit = vcs.create_commit(
        repo.id, feature.id, feature.head_commit_id, None,
        {"parts": [{"id": "motor-1"}]}, author="alice",
    )
    vcs.compare_commits(main.head_commit_id, commit.id)
    vcs.create_tag(repo.id, commit.id, "v1", user="alice")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from buildvcs.collaboration.comments import CommentAuthorizer, CommentThreadManager
from buildvcs.collaboration.merge_requests import MergeRequestTracker
from buildvcs.config import (
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_RECENT_COMMITS,
    MAX_THREAD_DEPTH,
    REVERT_COMMIT_MESSAGE,
)
from buildvcs.models import (
    Branch,
    BranchCheckout,
    BranchSummary,
    ChangeSet,
    Comment,
    Commit,
    CommitDetail,
    MergeRequest,
    Repository,
    RepositoryOverview,
    Snapshot,
    SnapshotPayload,
    Tag,
    TagSummary,
)
from buildvcs.settings import ConfigManager, configure_logging
from buildvcs.storage.database import VersionDatabase
from buildvcs.vcs.branching import BranchManager
from buildvcs.vcs.commits import AuthorResolver, CommitGraph
from buildvcs.vcs.diff import DiffEngine, generate_commit_message
from buildvcs.vcs.repo import RepositoryManager
from buildvcs.vcs.snapshots import SnapshotStore
from buildvcs.vcs.tags import TagRegistry

logger = logging.getLogger(__name__)


class BuildVCS:
    """The public interface of the version-control engine.

    Parameters
    ----------
    db:
        A :class:`VersionDatabase` or a path for one (``':memory:'`` by
        default).
    author_resolver:
        Identity lookup turning user ids into display names.
    comment_authorizer:
        Policy hook for comment edits and deletes.
    recent_limit:
        Commits returned with :meth:`get_repository`.
    """

    def __init__(
        self,
        db: VersionDatabase | str | Path = ":memory:",
        *,
        author_resolver: AuthorResolver | None = None,
        comment_authorizer: CommentAuthorizer | None = None,
        recent_limit: int = DEFAULT_RECENT_COMMITS,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.db = db if isinstance(db, VersionDatabase) else VersionDatabase(db)
        self.history_limit = history_limit

        self.snapshots = SnapshotStore(self.db)
        self.graph = CommitGraph(self.db, self.snapshots, author_resolver)
        self.branches = BranchManager(self.db, self.graph, self.snapshots)
        self.repositories = RepositoryManager(
            self.db, self.branches, self.graph, recent_limit=recent_limit,
        )
        self.tags = TagRegistry(self.db, self.graph)
        self.diff = DiffEngine(self.db, self.snapshots)
        self.merge_requests = MergeRequestTracker(self.db)
        self.comments = CommentThreadManager(self.db, comment_authorizer)

    @classmethod
    def from_config(cls, project_path: str | Path = ".", **kwargs: Any) -> BuildVCS:
        """Build an engine from the layered configuration of *project_path*."""
        manager = ConfigManager()
        config = manager.load_config(project_path)
        configure_logging(config["BUILDVCS_LOG_LEVEL"])
        db = VersionDatabase(
            manager.resolve_db_path(config, project_path),
            busy_timeout=float(config["BUILDVCS_BUSY_TIMEOUT"]),
        )
        logger.info("BuildVCS (%s) using %s", config["BUILDVCS_ENV"], db.path)
        return cls(
            db,
            recent_limit=int(config["BUILDVCS_RECENT_COMMITS"]),
            history_limit=int(config["BUILDVCS_HISTORY_LIMIT"]),
            **kwargs,
        )

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> BuildVCS:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- Repositories ---------------------------------------------------------

    def create_repository(
        self, build_ref: str, name: str, description: str = "", *, user: str,
    ) -> Repository:
        return self.repositories.create_repository(build_ref, name, description, user=user)

    def get_repository(self, build_ref: str) -> RepositoryOverview:
        return self.repositories.get_repository(build_ref)

    def get_repository_by_id(self, repository_id: str) -> Repository:
        return self.repositories.get_repository_by_id(repository_id)

    def update_repository(
        self, repository_id: str, *, name: str | None = None, description: str | None = None,
    ) -> Repository:
        return self.repositories.update_repository(repository_id, name=name, description=description)

    def delete_repository(self, repository_id: str) -> None:
        self.repositories.delete_repository(repository_id)

    # -- Branches -------------------------------------------------------------

    def create_branch(
        self,
        repository_id: str,
        name: str,
        from_commit_id: str | None = None,
        description: str = "",
        *,
        user: str,
    ) -> Branch:
        return self.branches.create_branch(
            repository_id, name, from_commit_id, description, user=user,
        )

    def get_branches(self, repository_id: str) -> list[BranchSummary]:
        return self.branches.get_branches(repository_id)

    def get_branch(self, branch_id: str) -> Branch:
        return self.branches.get_branch(branch_id)

    def get_branch_by_name(self, repository_id: str, name: str) -> Branch:
        return self.branches.get_branch_by_name(repository_id, name)

    def switch_branch(self, branch_id: str) -> BranchCheckout:
        return self.branches.switch_branch(branch_id)

    def delete_branch(self, branch_id: str) -> None:
        self.branches.delete_branch(branch_id)

    def revert_to_commit(
        self,
        repository_id: str,
        target_commit_id: str,
        new_branch_name: str,
        message: str = REVERT_COMMIT_MESSAGE,
        *,
        user: str,
    ) -> tuple[Branch, Commit]:
        return self.branches.revert_to_commit(
            repository_id, target_commit_id, new_branch_name, message, user=user,
        )

    # -- Commits --------------------------------------------------------------

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
        return self.graph.create_commit(
            repository_id,
            branch_id,
            expected_parent_commit_id,
            message,
            snapshot,
            author=author,
            committer=committer,
        )

    def get_commit_history(
        self, repository_id: str, branch_name: str = "main", limit: int | None = None,
    ) -> list[Commit]:
        return self.graph.get_commit_history(
            repository_id, branch_name, self.history_limit if limit is None else limit,
        )

    def get_commit(self, commit_id: str) -> CommitDetail:
        return self.graph.get_commit(commit_id)

    def get_snapshot(self, commit_id: str) -> Snapshot:
        return self.snapshots.get(commit_id)

    # -- Diff -----------------------------------------------------------------

    def compare_commits(self, commit_id_a: str, commit_id_b: str) -> ChangeSet:
        return self.diff.compare_commits(commit_id_a, commit_id_b)

    @staticmethod
    def generate_commit_message(changes: ChangeSet) -> str:
        return generate_commit_message(changes)

    # -- Tags -----------------------------------------------------------------

    def create_tag(
        self, repository_id: str, commit_id: str, name: str, description: str = "", *, user: str,
    ) -> Tag:
        return self.tags.create_tag(repository_id, commit_id, name, description, user=user)

    def get_tag(self, tag_id: str) -> Tag:
        return self.tags.get_tag(tag_id)

    def get_tags(self, repository_id: str) -> list[TagSummary]:
        return self.tags.get_tags(repository_id)

    def delete_tag(self, tag_id: str) -> None:
        self.tags.delete_tag(tag_id)

    # -- Merge requests -------------------------------------------------------

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
        return self.merge_requests.create_merge_request(
            repository_id,
            source_branch_id,
            target_branch_id,
            title,
            description,
            user=user,
            assigned_to=assigned_to,
        )

    def get_merge_request(self, mr_id: str) -> MergeRequest:
        return self.merge_requests.get_merge_request(mr_id)

    def get_merge_requests(self, repository_id: str, status: str | None = None) -> list[MergeRequest]:
        return self.merge_requests.get_merge_requests(repository_id, status)

    def update_merge_request(self, mr_id: str, **fields: Any) -> MergeRequest:
        return self.merge_requests.update_merge_request(mr_id, **fields)

    def close_merge_request(self, mr_id: str) -> MergeRequest:
        return self.merge_requests.close_merge_request(mr_id)

    def merge_request(self, mr_id: str, merge_commit_id: str) -> MergeRequest:
        return self.merge_requests.merge_request(mr_id, merge_commit_id)

    # -- Comments -------------------------------------------------------------

    def add_comment(
        self,
        repository_id: str,
        content: str,
        *,
        user: str,
        commit_id: str | None = None,
        merge_request_id: str | None = None,
        parent_comment_id: str | None = None,
    ) -> Comment:
        return self.comments.add_comment(
            repository_id,
            content,
            user=user,
            commit_id=commit_id,
            merge_request_id=merge_request_id,
            parent_comment_id=parent_comment_id,
        )

    def get_comments(
        self,
        repository_id: str,
        commit_id: str | None = None,
        merge_request_id: str | None = None,
    ) -> list[Comment]:
        return self.comments.get_comments(repository_id, commit_id, merge_request_id)

    def get_thread(self, comment_id: str, max_depth: int = MAX_THREAD_DEPTH) -> list[Comment]:
        return self.comments.get_thread(comment_id, max_depth)

    def update_comment(self, comment_id: str, content: str, *, user: str) -> Comment:
        return self.comments.update_comment(comment_id, content, user=user)

    def delete_comment(self, comment_id: str, *, user: str) -> int:
        return self.comments.delete_comment(comment_id, user=user)
