"""Tests for MergeRequestTracker.

Covers opening, listing, editing, closing and merging, including the
terminal-state rules that make a merge happen at most once.
"""

from __future__ import annotations

import pytest

from buildvcs import BuildVCS
from buildvcs.errors import ConflictError, NotFoundError, ValidationError
from buildvcs.models import Branch, MergeRequest, Repository


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
    return vcs.create_repository("B1", "Quad", user="alice")


@pytest.fixture
def main(vcs: BuildVCS, repo: Repository) -> Branch:
    return vcs.get_branch_by_name(repo.id, "main")


@pytest.fixture
def feature(vcs: BuildVCS, repo: Repository) -> Branch:
    return vcs.create_branch(repo.id, "feature", user="bob")


@pytest.fixture
def mr(vcs: BuildVCS, repo: Repository, main: Branch, feature: Branch) -> MergeRequest:
    return vcs.create_merge_request(
        repo.id, feature.id, main.id, "Swap motors", "2400kv", user="bob", assigned_to="alice",
    )


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateMergeRequest:
    def test_opens(self, mr: MergeRequest, feature: Branch, main: Branch) -> None:
        assert mr.status == "open"
        assert mr.source_branch_id == feature.id
        assert mr.target_branch_id == main.id
        assert mr.assigned_to == "alice"
        assert mr.merge_commit_id is None
        assert mr.merged_at is None

    def test_same_branch_rejected(self, vcs: BuildVCS, repo: Repository, main: Branch) -> None:
        with pytest.raises(ValidationError):
            vcs.create_merge_request(repo.id, main.id, main.id, "Self", user="bob")

    def test_branch_of_other_repository(self, vcs: BuildVCS, repo: Repository, main: Branch) -> None:
        other = vcs.create_repository("B2", "Other", user="alice")
        foreign = vcs.get_branch_by_name(other.id, "main")
        with pytest.raises(ValidationError):
            vcs.create_merge_request(repo.id, foreign.id, main.id, "Foreign", user="bob")
        assert vcs.get_merge_requests(repo.id) == []

    def test_blank_title(self, vcs: BuildVCS, repo: Repository, main: Branch, feature: Branch) -> None:
        with pytest.raises(ValidationError):
            vcs.create_merge_request(repo.id, feature.id, main.id, "", user="bob")

    def test_unknown_repository(self, vcs: BuildVCS, main: Branch, feature: Branch) -> None:
        with pytest.raises(NotFoundError):
            vcs.create_merge_request("missing", feature.id, main.id, "x", user="bob")


class TestGetMergeRequests:
    def test_status_filter(
        self, vcs: BuildVCS, repo: Repository, main: Branch, feature: Branch, mr: MergeRequest,
    ) -> None:
        second = vcs.create_merge_request(repo.id, main.id, feature.id, "Back-merge", user="alice")
        vcs.merge_requests.close_merge_request(second.id)

        assert [m.id for m in vcs.get_merge_requests(repo.id)] == [second.id, mr.id]
        assert [m.id for m in vcs.get_merge_requests(repo.id, "open")] == [mr.id]
        assert [m.id for m in vcs.get_merge_requests(repo.id, "closed")] == [second.id]
        assert vcs.get_merge_requests(repo.id, "merged") == []

    def test_missing(self, vcs: BuildVCS) -> None:
        with pytest.raises(NotFoundError):
            vcs.merge_requests.get_merge_request("missing")


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------


class TestUpdateMergeRequest:
    def test_edit_fields(self, vcs: BuildVCS, mr: MergeRequest) -> None:
        updated = vcs.update_merge_request(mr.id, title="Swap motors (v2)", assigned_to="carol")
        assert updated.title == "Swap motors (v2)"
        assert updated.assigned_to == "carol"
        assert updated.description == "2400kv"

    def test_unknown_field(self, vcs: BuildVCS, mr: MergeRequest) -> None:
        with pytest.raises(ValidationError):
            vcs.update_merge_request(mr.id, source_branch_id="x")

    def test_cannot_merge_via_update(self, vcs: BuildVCS, mr: MergeRequest) -> None:
        with pytest.raises(ValidationError):
            vcs.update_merge_request(mr.id, status="merged")

    def test_close(self, vcs: BuildVCS, mr: MergeRequest) -> None:
        closed = vcs.update_merge_request(mr.id, status="closed")
        assert closed.status == "closed"
        assert closed.is_terminal
        assert closed.merged_at is None

    def test_terminal_rejects_edits(self, vcs: BuildVCS, mr: MergeRequest) -> None:
        vcs.merge_requests.close_merge_request(mr.id)
        with pytest.raises(ConflictError):
            vcs.update_merge_request(mr.id, title="Too late")
        assert vcs.merge_requests.get_merge_request(mr.id).title == "Swap motors"

    def test_missing(self, vcs: BuildVCS) -> None:
        with pytest.raises(NotFoundError):
            vcs.update_merge_request("missing", title="x")


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


class TestMergeRequest:
    def test_merge(self, vcs: BuildVCS, repo: Repository, main: Branch, mr: MergeRequest) -> None:
        merge_commit = vcs.create_commit(
            repo.id, main.id, main.head_commit_id, "Merge feature", {}, author="alice",
        )
        merged = vcs.merge_request(mr.id, merge_commit.id)
        assert merged.status == "merged"
        assert merged.merge_commit_id == merge_commit.id
        assert merged.merged_at is not None

    def test_merge_twice_conflicts(self, vcs: BuildVCS, repo: Repository, main: Branch, mr: MergeRequest) -> None:
        c1 = vcs.create_commit(repo.id, main.id, main.head_commit_id, "Merge", {}, author="alice")
        first = vcs.merge_request(mr.id, c1.id)
        c2 = vcs.create_commit(repo.id, main.id, c1.id, "Merge again", {}, author="alice")

        with pytest.raises(ConflictError) as exc_info:
            vcs.merge_request(mr.id, c2.id)

        assert exc_info.value.context["status"] == "merged"
        after = vcs.merge_requests.get_merge_request(mr.id)
        assert after.merged_at == first.merged_at
        assert after.merge_commit_id == c1.id

    def test_closed_cannot_merge(self, vcs: BuildVCS, main: Branch, mr: MergeRequest) -> None:
        vcs.merge_requests.close_merge_request(mr.id)
        with pytest.raises(ConflictError):
            vcs.merge_request(mr.id, main.head_commit_id)

    def test_merged_cannot_close(self, vcs: BuildVCS, main: Branch, mr: MergeRequest) -> None:
        vcs.merge_request(mr.id, main.head_commit_id)
        with pytest.raises(ConflictError):
            vcs.merge_requests.close_merge_request(mr.id)

    def test_commit_of_other_repository(self, vcs: BuildVCS, mr: MergeRequest) -> None:
        other = vcs.create_repository("B2", "Other", user="alice")
        foreign = vcs.get_branch_by_name(other.id, "main").head_commit_id
        with pytest.raises(ValidationError):
            vcs.merge_request(mr.id, foreign)
        assert vcs.merge_requests.get_merge_request(mr.id).status == "open"

    def test_unknown_commit(self, vcs: BuildVCS, mr: MergeRequest) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            vcs.merge_request(mr.id, "missing")
        assert exc_info.value.context["commit_id"] == "missing"
        assert vcs.merge_requests.get_merge_request(mr.id).status == "open"
