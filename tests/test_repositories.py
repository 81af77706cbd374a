"""Tests for RepositoryManager.

Covers atomic creation (repository + default branch + initial commit),
lookup by build, updates, and cascading deletes.
"""

from __future__ import annotations

import pytest

from buildvcs import BuildVCS
from buildvcs.errors import ConflictError, IntegrityError, NotFoundError, ValidationError
from buildvcs.models import Repository


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def vcs() -> BuildVCS:
    engine = BuildVCS(":memory:")
    yield engine
    engine.close()


@pytest.fixture
def repo(vcs: BuildVCS) -> Repository:
    return vcs.create_repository("B1", "Freestyle quad", "5 inch build", user="alice")


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateRepository:
    def test_fields(self, repo: Repository) -> None:
        assert repo.build_ref == "B1"
        assert repo.name == "Freestyle quad"
        assert repo.description == "5 inch build"
        assert repo.created_by == "alice"

    def test_exactly_one_default_branch(self, vcs: BuildVCS, repo: Repository) -> None:
        branches = vcs.branches.list_branches(repo.id)
        defaults = [b for b in branches if b.is_default]
        assert len(branches) == 1
        assert len(defaults) == 1
        assert defaults[0].name == "main"

    def test_default_head_is_root_commit(self, vcs: BuildVCS, repo: Repository) -> None:
        main = vcs.get_branch_by_name(repo.id, "main")
        head = vcs.graph.require_commit(main.head_commit_id)
        assert head.parent_commit_id is None
        assert head.message == "Initial commit"
        assert head.author_id == "alice"
        assert head.branch_id == main.id

    def test_initial_snapshot_is_empty(self, vcs: BuildVCS, repo: Repository) -> None:
        main = vcs.get_branch_by_name(repo.id, "main")
        snapshot = vcs.get_snapshot(main.head_commit_id)
        assert snapshot.parts_data == []
        assert snapshot.optimization_data == {}

    def test_duplicate_build_ref_conflicts(self, vcs: BuildVCS, repo: Repository) -> None:
        with pytest.raises(ConflictError) as exc_info:
            vcs.create_repository("B1", "Another", user="bob")
        assert exc_info.value.context["repository_id"] == repo.id
        assert vcs.db.count("repositories") == 1

    def test_blank_name_rejected(self, vcs: BuildVCS) -> None:
        with pytest.raises(ValidationError):
            vcs.create_repository("B2", "   ", user="alice")

    def test_missing_build_ref_rejected(self, vcs: BuildVCS) -> None:
        with pytest.raises(ValidationError):
            vcs.create_repository("", "Quad", user="alice")

    def test_failure_leaves_nothing_behind(self, vcs: BuildVCS, monkeypatch: pytest.MonkeyPatch) -> None:
        def broken(*args, **kwargs):
            raise IntegrityError("snapshot write failed")

        monkeypatch.setattr(vcs.snapshots, "save", broken)
        with pytest.raises(IntegrityError):
            vcs.create_repository("B9", "Doomed", user="alice")

        for table in ("repositories", "branches", "commits", "snapshots"):
            assert vcs.db.count(table) == 0


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestGetRepository:
    def test_overview(self, vcs: BuildVCS, repo: Repository) -> None:
        overview = vcs.get_repository("B1")
        assert overview.repository.id == repo.id
        assert [b.name for b in overview.branches] == ["main"]
        assert overview.default_branch is not None
        assert len(overview.recent_commits) == 1

    def test_recent_commits_newest_first(self, vcs: BuildVCS, repo: Repository) -> None:
        main = vcs.get_branch_by_name(repo.id, "main")
        c1 = vcs.create_commit(repo.id, main.id, main.head_commit_id, "one", {}, author="alice")
        c2 = vcs.create_commit(repo.id, main.id, c1.id, "two", {}, author="alice")
        commits = vcs.get_repository("B1").recent_commits
        assert [c.id for c in commits[:2]] == [c2.id, c1.id]

    def test_recent_limit(self) -> None:
        engine = BuildVCS(":memory:", recent_limit=2)
        created = engine.create_repository("B1", "Quad", user="alice")
        main = engine.get_branch_by_name(created.id, "main")
        head = main.head_commit_id
        for i in range(4):
            head = engine.create_commit(created.id, main.id, head, f"c{i}", {}, author="alice").id
        assert len(engine.get_repository("B1").recent_commits) == 2

    def test_missing_build(self, vcs: BuildVCS) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            vcs.get_repository("nope")
        assert exc_info.value.kind == "not_found"
        assert exc_info.value.context == {"build_ref": "nope"}

    def test_find_repository_returns_none(self, vcs: BuildVCS) -> None:
        assert vcs.repositories.find_repository("nope") is None


class TestUpdateRepository:
    def test_rename(self, vcs: BuildVCS, repo: Repository) -> None:
        updated = vcs.update_repository(repo.id, name="Cinewhoop", description="3 inch")
        assert updated.name == "Cinewhoop"
        assert updated.description == "3 inch"
        assert updated.build_ref == "B1"

    def test_blank_name(self, vcs: BuildVCS, repo: Repository) -> None:
        with pytest.raises(ValidationError):
            vcs.update_repository(repo.id, name=" ")

    def test_missing(self, vcs: BuildVCS) -> None:
        with pytest.raises(NotFoundError):
            vcs.update_repository("missing", name="x")


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


class TestDeleteRepository:
    def test_cascades_everything(self, vcs: BuildVCS, repo: Repository) -> None:
        main = vcs.get_branch_by_name(repo.id, "main")
        feature = vcs.create_branch(repo.id, "feature", user="alice")
        commit = vcs.create_commit(
            repo.id, feature.id, feature.head_commit_id, "motor",
            {"parts": [{"id": "motor-1"}]}, author="alice",
        )
        vcs.create_tag(repo.id, commit.id, "v1", user="alice")
        mr = vcs.create_merge_request(repo.id, feature.id, main.id, "Add motor", user="alice")
        root = vcs.add_comment(repo.id, "looks good", user="bob", merge_request_id=mr.id)
        vcs.add_comment(repo.id, "thanks", user="alice", merge_request_id=mr.id, parent_comment_id=root.id)
        vcs.add_comment(repo.id, "nice", user="bob", commit_id=commit.id)

        vcs.delete_repository(repo.id)

        for table in ("repositories", "branches", "commits", "snapshots",
                      "tags", "merge_requests", "comments"):
            assert vcs.db.count(table) == 0, table

    def test_other_repositories_untouched(self, vcs: BuildVCS, repo: Repository) -> None:
        other = vcs.create_repository("B2", "Other", user="bob")
        vcs.delete_repository(repo.id)
        assert vcs.get_repository("B2").repository.id == other.id
        assert len(vcs.get_commit_history(other.id, "main")) == 1

    def test_long_history_deletes(self, vcs: BuildVCS, repo: Repository) -> None:
        main = vcs.get_branch_by_name(repo.id, "main")
        head = main.head_commit_id
        for i in range(30):
            head = vcs.create_commit(repo.id, main.id, head, f"c{i}", {}, author="alice").id
        vcs.delete_repository(repo.id)
        assert vcs.db.count("commits") == 0

    def test_missing(self, vcs: BuildVCS) -> None:
        with pytest.raises(NotFoundError):
            vcs.delete_repository("missing")
