"""Tests for snapshot comparison and generated commit messages."""

from __future__ import annotations

import pytest

from buildvcs import BuildVCS
from buildvcs.errors import NotFoundError
from buildvcs.models import ChangeSet, SnapshotPayload
from buildvcs.vcs.diff import calculate_changes, format_commit_hash, generate_commit_message


@pytest.fixture
def vcs() -> BuildVCS:
    engine = BuildVCS(":memory:")
    yield engine
    engine.close()


def _payload(parts=None, optimizations=None) -> SnapshotPayload:
    return SnapshotPayload(parts_data=parts or [], optimization_data=optimizations or {})


# ---------------------------------------------------------------------------
# calculate_changes
# ---------------------------------------------------------------------------


class TestCalculateChanges:
    def test_identical_is_empty(self) -> None:
        payload = _payload([{"id": "a", "kv": 1}], {"pid": "x"})
        changes = calculate_changes(payload, payload)
        assert changes.is_empty
        assert changes.counts() == {"added": 0, "removed": 0, "modified": 0, "optimizations": 0}

    def test_added_removed_modified(self) -> None:
        old = _payload([{"id": "a", "kv": 1}, {"id": "b"}, {"id": "c"}])
        new = _payload([{"id": "a", "kv": 2}, {"id": "c"}, {"id": "d"}])
        changes = calculate_changes(old, new)
        assert changes.added == [{"id": "d"}]
        assert changes.removed == [{"id": "b"}]
        assert changes.modified == [{"id": "a", "kv": 2}]

    def test_nested_modification_detected(self) -> None:
        old = _payload([{"id": "a", "specs": {"weight": [10, 20]}}])
        new = _payload([{"id": "a", "specs": {"weight": [10, 21]}}])
        assert len(calculate_changes(old, new).modified) == 1

    def test_key_order_is_not_a_modification(self) -> None:
        old = _payload([{"id": "a", "x": 1, "y": 2}])
        new = _payload([{"y": 2, "x": 1, "id": "a"}])
        assert calculate_changes(old, new).is_empty

    def test_reordering_parts_is_not_a_change(self) -> None:
        old = _payload([{"id": "a"}, {"id": "b"}])
        new = _payload([{"id": "b"}, {"id": "a"}])
        assert calculate_changes(old, new).is_empty

    def test_type_change_is_a_modification(self) -> None:
        old = _payload([{"id": "a", "enabled": 1}, {"id": "b", "ratio": 2}])
        new = _payload([{"id": "a", "enabled": True}, {"id": "b", "ratio": 2}])
        assert calculate_changes(old, new).modified == [{"id": "a", "enabled": True}]

    def test_optimization_type_change_counts(self) -> None:
        old = _payload(optimizations={"airmode": 0})
        new = _payload(optimizations={"airmode": False})
        assert calculate_changes(old, new).optimizations_changed == ["airmode"]

    def test_optimizations_changed_sorted(self) -> None:
        old = _payload(optimizations={"pid": "stock", "filter": "on"})
        new = _payload(optimizations={"pid": "tuned", "filter": "on", "rates": "high"})
        assert calculate_changes(old, new).optimizations_changed == ["pid", "rates"]

    def test_removed_optimization_counts(self) -> None:
        old = _payload(optimizations={"pid": "stock"})
        assert calculate_changes(old, _payload()).optimizations_changed == ["pid"]

    def test_bookkeeping_key_ignored(self) -> None:
        old = _payload(optimizations={"pid": "x", "lastUpdated": "2026-01-01"})
        new = _payload(optimizations={"pid": "x", "lastUpdated": "2026-02-01"})
        assert calculate_changes(old, new).is_empty


# ---------------------------------------------------------------------------
# generate_commit_message
# ---------------------------------------------------------------------------


class TestGenerateCommitMessage:
    def test_all_fragments_in_order(self) -> None:
        changes = ChangeSet(
            added=[{"id": "a"}],
            removed=[{"id": "b"}, {"id": "c"}],
            modified=[{"id": "d"}],
            optimizations_changed=["pid", "rates", "filter"],
        )
        assert generate_commit_message(changes) == (
            "Added 1 parts, Removed 2 parts, Modified 1 parts, Applied 3 optimizations"
        )

    def test_empty_fragments_omitted(self) -> None:
        changes = ChangeSet(removed=[{"id": "b"}], optimizations_changed=["pid"])
        assert generate_commit_message(changes) == "Removed 1 parts, Applied 1 optimizations"

    def test_fallback(self) -> None:
        assert generate_commit_message(ChangeSet()) == "Updated build configuration"

    def test_accepts_counts(self) -> None:
        assert generate_commit_message({"added": 0, "modified": 4}) == "Modified 4 parts"

    def test_facade_static(self) -> None:
        assert BuildVCS.generate_commit_message(ChangeSet(added=[{"id": "a"}])) == "Added 1 parts"


class TestFormatCommitHash:
    def test_shortens(self) -> None:
        assert format_commit_hash("0123456789abcdef") == "01234567"

    def test_empty(self) -> None:
        assert format_commit_hash(None) == ""
        assert format_commit_hash("") == ""


# ---------------------------------------------------------------------------
# DiffEngine
# ---------------------------------------------------------------------------


class TestCompareCommits:
    def test_between_stored_commits(self, vcs: BuildVCS) -> None:
        repo = vcs.create_repository("B1", "Quad", user="alice")
        main = vcs.get_branch_by_name(repo.id, "main")
        c1 = vcs.create_commit(
            repo.id, main.id, main.head_commit_id, "v1",
            {"parts": [{"id": "motor", "kv": 1950}, {"id": "esc"}]}, author="alice",
        )
        c2 = vcs.create_commit(
            repo.id, main.id, c1.id, "v2",
            {"parts": [{"id": "motor", "kv": 2400}, {"id": "vtx"}]}, author="alice",
        )
        changes = vcs.compare_commits(c1.id, c2.id)
        assert changes.added == [{"id": "vtx"}]
        assert changes.removed == [{"id": "esc"}]
        assert changes.modified == [{"id": "motor", "kv": 2400}]

    def test_with_itself(self, vcs: BuildVCS) -> None:
        repo = vcs.create_repository("B1", "Quad", user="alice")
        main = vcs.get_branch_by_name(repo.id, "main")
        assert vcs.compare_commits(main.head_commit_id, main.head_commit_id).is_empty

    def test_direction_matters(self, vcs: BuildVCS) -> None:
        repo = vcs.create_repository("B1", "Quad", user="alice")
        main = vcs.get_branch_by_name(repo.id, "main")
        c1 = vcs.create_commit(
            repo.id, main.id, main.head_commit_id, "v1", {"parts": [{"id": "a"}]}, author="alice",
        )
        assert vcs.compare_commits(main.head_commit_id, c1.id).added == [{"id": "a"}]
        assert vcs.compare_commits(c1.id, main.head_commit_id).removed == [{"id": "a"}]

    def test_missing_commit(self, vcs: BuildVCS) -> None:
        repo = vcs.create_repository("B1", "Quad", user="alice")
        main = vcs.get_branch_by_name(repo.id, "main")
        with pytest.raises(NotFoundError) as exc_info:
            vcs.compare_commits(main.head_commit_id, "missing")
        assert exc_info.value.context["commit_id"] == "missing"
