"""RepositoryManager — create, query and delete build repositories.

A repository is created together with its default branch and initial
commit, atomically, or not at all.
"""

from __future__ import annotations

import logging

from buildvcs.config import DEFAULT_BRANCH_NAME, DEFAULT_RECENT_COMMITS
from buildvcs.errors import ConflictError, NotFoundError, ValidationError
from buildvcs.models import Repository, RepositoryOverview, utc_now
from buildvcs.storage.database import VersionDatabase
from buildvcs.storage.rows import to_repository
from buildvcs.vcs.branching import BranchManager
from buildvcs.vcs.commits import CommitGraph

logger = logging.getLogger(__name__)


class RepositoryManager:
    """Top-level container binding a build to its history.

    Parameters
    ----------
    db:
        The version database.
    branches, graph:
        Managers sharing *db*.
    recent_limit:
        Number of commits returned with :meth:`get_repository`.
    """

    def __init__(
        self,
        db: VersionDatabase,
        branches: BranchManager,
        graph: CommitGraph,
        *,
        recent_limit: int = DEFAULT_RECENT_COMMITS,
    ) -> None:
        self._db = db
        self._branches = branches
        self._graph = graph
        self.recent_limit = recent_limit

    def create_repository(
        self,
        build_ref: str,
        name: str,
        description: str = "",
        *,
        user: str,
    ) -> Repository:
        """Create a repository with a ``main`` branch and an initial commit.

        A build can have only one repository; a second call for the same
        *build_ref* raises :class:`ConflictError`.  Callers wanting
        get-or-create semantics call :meth:`find_repository` first.
        """
        if not build_ref:
            raise ValidationError("build_ref is required")
        if not (name or "").strip():
            raise ValidationError("Repository name is required", build_ref=build_ref)
        if not user:
            raise ValidationError("Repository creator is required", build_ref=build_ref)

        repository = Repository(
            name=name.strip(),
            description=description,
            build_ref=build_ref,
            created_by=user,
            created_at=utc_now(),
        )

        with self._db.transaction():
            existing = self._db.get("repositories", build_ref, key="build_ref")
            if existing is not None:
                raise ConflictError(
                    f"Build {build_ref} already has a repository",
                    build_ref=build_ref,
                    repository_id=existing["id"],
                )
            self._db.insert("repositories", repository.model_dump())
            branch = self._branches.insert_branch(
                repository.id,
                DEFAULT_BRANCH_NAME,
                None,
                description="Default branch",
                is_default=True,
                user=user,
            )
            initial = self._graph.create_initial_commit(repository.id, branch.id, user=user)

        logger.info(
            "Created repository '%s' (%s) for build %s at %s",
            repository.name, repository.id, build_ref, initial.short_hash,
        )
        return repository

    def find_repository(self, build_ref: str) -> Repository | None:
        row = self._db.get("repositories", build_ref, key="build_ref")
        return to_repository(row) if row is not None else None

    def get_repository_by_id(self, repository_id: str) -> Repository:
        row = self._db.get("repositories", repository_id)
        if row is None:
            raise NotFoundError(f"Repository {repository_id} not found", repository_id=repository_id)
        return to_repository(row)

    def get_repository(self, build_ref: str) -> RepositoryOverview:
        """Return the repository of *build_ref* with branches and recent commits."""
        repository = self.find_repository(build_ref)
        if repository is None:
            raise NotFoundError(f"No repository for build {build_ref}", build_ref=build_ref)
        return RepositoryOverview(
            repository=repository,
            branches=self._branches.list_branches(repository.id),
            recent_commits=self._graph.recent_commits(repository.id, self.recent_limit),
        )

    def update_repository(
        self,
        repository_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> Repository:
        """Rename or re-describe a repository.  ``build_ref`` never changes."""
        values: dict[str, str] = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Repository name must not be blank", repository_id=repository_id)
            values["name"] = name.strip()
        if description is not None:
            values["description"] = description

        with self._db.transaction():
            self.get_repository_by_id(repository_id)
            if values:
                self._db.update_if("repositories", values, {"id": repository_id})
            repository = self.get_repository_by_id(repository_id)

        logger.info("Updated repository %s: %s", repository_id, sorted(values))
        return repository

    def delete_repository(self, repository_id: str) -> None:
        """Delete a repository and everything it owns."""
        with self._db.transaction():
            repository = self.get_repository_by_id(repository_id)
            # Foreign keys cascade to branches, commits, snapshots, tags,
            # merge requests and comments.
            self._db.delete("repositories", {"id": repository_id})
        logger.info("Deleted repository '%s' (%s)", repository.name, repository_id)
