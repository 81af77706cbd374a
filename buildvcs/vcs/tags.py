"""TagRegistry — immutable named pointers to commits."""

from __future__ import annotations

import logging

from buildvcs.errors import ConflictError, NotFoundError, ValidationError
from buildvcs.models import Tag, TagSummary, utc_now
from buildvcs.storage.database import VersionDatabase
from buildvcs.storage.rows import to_tag
from buildvcs.vcs.commits import CommitGraph

logger = logging.getLogger(__name__)


class TagRegistry:
    """Create, list and delete tags.

    Deleting a tag removes only the tag row; the commit and every branch
    head are left untouched.
    """

    def __init__(self, db: VersionDatabase, graph: CommitGraph) -> None:
        self._db = db
        self._graph = graph

    def create_tag(
        self,
        repository_id: str,
        commit_id: str,
        name: str,
        description: str = "",
        *,
        user: str,
    ) -> Tag:
        """Tag *commit_id* as *name* (unique per repository)."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Tag name is required", repository_id=repository_id)

        with self._db.transaction():
            self._graph.require_commit(commit_id, repository_id)
            existing = self._db.fetch_one(
                "SELECT id FROM tags WHERE repository_id = ? AND name = ?",
                (repository_id, name),
            )
            if existing is not None:
                raise ConflictError(
                    f"Tag '{name}' already exists",
                    repository_id=repository_id,
                    tag_name=name,
                    tag_id=existing["id"],
                )
            tag = Tag(
                repository_id=repository_id,
                commit_id=commit_id,
                name=name,
                description=description,
                created_by=user,
                created_at=utc_now(),
            )
            self._db.insert("tags", tag.model_dump())

        logger.info("Tagged %s as '%s' in repository %s", commit_id, name, repository_id)
        return tag

    def get_tag(self, tag_id: str) -> Tag:
        row = self._db.get("tags", tag_id)
        if row is None:
            raise NotFoundError(f"Tag {tag_id} not found", tag_id=tag_id)
        return to_tag(row)

    def get_tags(self, repository_id: str) -> list[TagSummary]:
        """Tags of the repository, newest first, with the tagged commit."""
        rows = self._db.find(
            "tags",
            {"repository_id": repository_id},
            order_by="created_at DESC, rowid DESC",
        )
        return [
            TagSummary(tag=to_tag(row), commit=self._graph.find_commit(row["commit_id"]))
            for row in rows
        ]

    def delete_tag(self, tag_id: str) -> None:
        if self._db.delete("tags", {"id": tag_id}) == 0:
            raise NotFoundError(f"Tag {tag_id} not found", tag_id=tag_id)
        logger.info("Deleted tag %s", tag_id)
