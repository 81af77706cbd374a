"""Pydantic models for repositories, branches, commits and their metadata."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from buildvcs.config import SHORT_HASH_LENGTH


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


MergeRequestStatus = Literal["open", "merged", "closed"]

MR_OPEN = "open"
MR_MERGED = "merged"
MR_CLOSED = "closed"
TERMINAL_MR_STATUSES = frozenset({MR_MERGED, MR_CLOSED})


class Repository(BaseModel):
    """Versioned container for one build's history."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    build_ref: str
    """External id of the build being versioned."""

    created_by: str
    created_at: datetime = Field(default_factory=utc_now)


class Branch(BaseModel):
    """Named, mutable pointer to a commit.

    ``head_commit_id`` only ever moves through the commit graph's
    compare-and-swap.
    """

    id: str = Field(default_factory=new_id)
    repository_id: str
    name: str
    description: str = ""
    is_default: bool = False
    head_commit_id: Optional[str] = None
    created_by: str
    created_at: datetime = Field(default_factory=utc_now)


class Commit(BaseModel):
    """Immutable, content-hashed node with at most one parent."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    repository_id: str
    branch_id: Optional[str] = None
    parent_commit_id: Optional[str] = None
    commit_hash: str
    author_id: str
    committer_id: str
    message: str
    changes: dict[str, int] = Field(default_factory=dict)
    """Part/optimization counts relative to the parent snapshot."""

    created_at: datetime = Field(default_factory=utc_now)

    @property
    def short_hash(self) -> str:
        return self.commit_hash[:SHORT_HASH_LENGTH]


class SnapshotPayload(BaseModel):
    """Build state supplied by the build editor.

    Only ``parts_data`` (each part carrying a stable ``id``) and
    ``optimization_data`` are interpreted, and only by the diff engine.
    Everything else is stored verbatim.
    """

    model_config = ConfigDict(populate_by_name=True)

    build_data: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("build_data", "build"),
    )
    parts_data: list[dict[str, Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("parts_data", "parts"),
    )
    analysis_data: Optional[dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("analysis_data", "analysis"),
    )
    optimization_data: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("optimization_data", "optimizations"),
    )

    @field_validator("build_data", "optimization_data", mode="before")
    @classmethod
    def _null_as_empty_map(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("parts_data", mode="before")
    @classmethod
    def _null_as_no_parts(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("parts_data")
    @classmethod
    def _parts_have_unique_ids(cls, parts: list[dict[str, Any]]) -> list[dict[str, Any]]:
        seen: set[Any] = set()
        for index, part in enumerate(parts):
            part_id = part.get("id")
            if part_id is None or part_id == "":
                raise ValueError(f"part at index {index} has no 'id'")
            if part_id in seen:
                raise ValueError(f"duplicate part id {part_id!r}")
            seen.add(part_id)
        return parts


class Snapshot(SnapshotPayload):
    """The stored build state frozen at a commit (1:1 with the commit)."""

    commit_id: str
    content_hash: str
    created_at: datetime = Field(default_factory=utc_now)

    def payload(self) -> SnapshotPayload:
        return SnapshotPayload(
            build_data=self.build_data,
            parts_data=self.parts_data,
            analysis_data=self.analysis_data,
            optimization_data=self.optimization_data,
        )


class Tag(BaseModel):
    """Immutable named pointer to a specific commit."""

    id: str = Field(default_factory=new_id)
    repository_id: str
    commit_id: str
    name: str
    description: str = ""
    created_by: str
    created_at: datetime = Field(default_factory=utc_now)


class MergeRequest(BaseModel):
    """Proposal to integrate one branch into another."""

    id: str = Field(default_factory=new_id)
    repository_id: str
    source_branch_id: str
    target_branch_id: str
    title: str
    description: str = ""
    status: MergeRequestStatus = "open"
    """Status: 'open' (initial), 'merged' or 'closed' (both terminal)."""

    merge_commit_id: Optional[str] = None
    created_by: str
    assigned_to: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    merged_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_MR_STATUSES


class Comment(BaseModel):
    """A comment on a commit or a merge request, optionally a reply."""

    id: str = Field(default_factory=new_id)
    repository_id: str
    commit_id: Optional[str] = None
    merge_request_id: Optional[str] = None
    parent_comment_id: Optional[str] = None
    author_id: str
    content: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


class ChangeSet(BaseModel):
    """Structural difference between two snapshots."""

    added: list[dict[str, Any]] = Field(default_factory=list)
    removed: list[dict[str, Any]] = Field(default_factory=list)
    modified: list[dict[str, Any]] = Field(default_factory=list)
    optimizations_changed: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified or self.optimizations_changed)

    def counts(self) -> dict[str, int]:
        return {
            "added": len(self.added),
            "removed": len(self.removed),
            "modified": len(self.modified),
            "optimizations": len(self.optimizations_changed),
        }


# -- Read views ---------------------------------------------------------------


class BranchSummary(BaseModel):
    branch: Branch
    head_commit: Optional[Commit] = None


class BranchCheckout(BaseModel):
    """A branch resolved together with its head commit and snapshot."""

    branch: Branch
    head_commit: Optional[Commit] = None
    snapshot: Optional[Snapshot] = None


class RepositoryOverview(BaseModel):
    repository: Repository
    branches: list[Branch] = Field(default_factory=list)
    recent_commits: list[Commit] = Field(default_factory=list)

    @property
    def default_branch(self) -> Optional[Branch]:
        for branch in self.branches:
            if branch.is_default:
                return branch
        return None


class CommitDetail(BaseModel):
    commit: Commit
    snapshot: Optional[Snapshot] = None
    author_name: Optional[str] = None
    committer_name: Optional[str] = None


class TagSummary(BaseModel):
    tag: Tag
    commit: Optional[Commit] = None
