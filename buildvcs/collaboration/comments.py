"""CommentThreadManager — threaded discussion on commits and merge requests."""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable

from buildvcs.config import MAX_THREAD_DEPTH
from buildvcs.errors import ForbiddenError, NotFoundError, ValidationError
from buildvcs.models import Comment, utc_now
from buildvcs.storage.database import VersionDatabase
from buildvcs.storage.rows import to_comment

logger = logging.getLogger(__name__)

CommentAuthorizer = Callable[[str, Comment, str], bool]
"""``(user, comment, action) -> allowed`` where action is 'update' or 'delete'."""


def author_only(user: str, comment: Comment, action: str) -> bool:
    """Default policy: only the author may edit or delete a comment."""
    return user == comment.author_id


class CommentThreadManager:
    """Store and retrieve threaded comments.

    A comment targets exactly one commit or one merge request.  Replies
    point at their parent through ``parent_comment_id`` and must share the
    parent's target; callers rebuild threads from that link or use
    :meth:`get_thread`.

    Parameters
    ----------
    db:
        The version database.
    authorize:
        Hook deciding who may update or delete a comment.  Identity policy
        lives with the caller; the default allows the author only.
    """

    def __init__(self, db: VersionDatabase, authorize: CommentAuthorizer | None = None) -> None:
        self._db = db
        self._authorize = authorize or author_only

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
        """Add a comment to a commit or merge request.

        Parameters
        ----------
        content:
            Comment body text.
        user:
            Author of the comment.
        commit_id, merge_request_id:
            Exactly one must be given.
        parent_comment_id:
            Optional comment this replies to; must be on the same target.
        """
        if (commit_id is None) == (merge_request_id is None):
            raise ValidationError(
                "A comment needs exactly one of commit_id or merge_request_id",
                repository_id=repository_id,
                commit_id=commit_id,
                merge_request_id=merge_request_id,
            )
        if not (content or "").strip():
            raise ValidationError("Comment content is required", repository_id=repository_id)
        if not user:
            raise ValidationError("Comment author is required", repository_id=repository_id)

        with self._db.transaction():
            if commit_id is not None:
                self._require_target("commits", commit_id, repository_id, commit_id=commit_id)
            else:
                self._require_target(
                    "merge_requests", merge_request_id, repository_id,
                    merge_request_id=merge_request_id,
                )

            if parent_comment_id is not None:
                parent = self.get_comment(parent_comment_id)
                if (
                    parent.repository_id != repository_id
                    or parent.commit_id != commit_id
                    or parent.merge_request_id != merge_request_id
                ):
                    raise ValidationError(
                        "A reply must target the same commit or merge request as its parent",
                        comment_id=parent_comment_id,
                        commit_id=commit_id,
                        merge_request_id=merge_request_id,
                    )

            comment = Comment(
                repository_id=repository_id,
                commit_id=commit_id,
                merge_request_id=merge_request_id,
                parent_comment_id=parent_comment_id,
                author_id=user,
                content=content,
                created_at=utc_now(),
            )
            self._db.insert("comments", comment.model_dump())

        logger.info(
            "Added comment %s on %s", comment.id, commit_id or merge_request_id,
        )
        return comment

    def get_comment(self, comment_id: str) -> Comment:
        row = self._db.get("comments", comment_id)
        if row is None:
            raise NotFoundError(f"Comment {comment_id} not found", comment_id=comment_id)
        return to_comment(row)

    def get_comments(
        self,
        repository_id: str,
        commit_id: str | None = None,
        merge_request_id: str | None = None,
    ) -> list[Comment]:
        """Comments of the repository in chronological order.

        Filtered by *commit_id* or *merge_request_id* when given.
        """
        if commit_id is not None and merge_request_id is not None:
            raise ValidationError(
                "Filter by commit_id or merge_request_id, not both",
                commit_id=commit_id,
                merge_request_id=merge_request_id,
            )
        where: dict[str, str] = {"repository_id": repository_id}
        if commit_id is not None:
            where["commit_id"] = commit_id
        elif merge_request_id is not None:
            where["merge_request_id"] = merge_request_id
        return [to_comment(row) for row in self._db.find("comments", where)]

    def get_thread(self, comment_id: str, max_depth: int = MAX_THREAD_DEPTH) -> list[Comment]:
        """Return *comment_id* and its replies, breadth-first.

        Replies deeper than *max_depth* levels below the root are omitted.
        """
        root = self.get_comment(comment_id)
        thread = [root]
        queue: deque[tuple[str, int]] = deque([(root.id, 0)])
        while queue:
            current, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for row in self._db.find("comments", {"parent_comment_id": current}):
                reply = to_comment(row)
                thread.append(reply)
                queue.append((reply.id, depth + 1))
        return thread

    def update_comment(self, comment_id: str, content: str, *, user: str) -> Comment:
        if not (content or "").strip():
            raise ValidationError("Comment content is required", comment_id=comment_id)

        with self._db.transaction():
            comment = self.get_comment(comment_id)
            self._check(user, comment, "update")
            self._db.update_if(
                "comments",
                {"content": content, "updated_at": utc_now()},
                {"id": comment_id},
            )
            comment = self.get_comment(comment_id)

        logger.info("Comment %s updated by %s", comment_id, user)
        return comment

    def delete_comment(self, comment_id: str, *, user: str) -> int:
        """Delete a comment together with all replies below it.

        Returns the number of comments removed.
        """
        with self._db.transaction():
            comment = self.get_comment(comment_id)
            self._check(user, comment, "delete")

            doomed = [comment_id]
            queue = deque([comment_id])
            while queue:
                current = queue.popleft()
                for row in self._db.fetch_all(
                    "SELECT id FROM comments WHERE parent_comment_id = ?", (current,),
                ):
                    doomed.append(row["id"])
                    queue.append(row["id"])
            for doomed_id in doomed:
                self._db.delete("comments", {"id": doomed_id})

        logger.info("Deleted comment %s and %d replies", comment_id, len(doomed) - 1)
        return len(doomed)

    # -- Internals ------------------------------------------------------------

    def _require_target(self, table: str, row_id: str, repository_id: str, **context: str) -> None:
        row = self._db.get(table, row_id)
        if row is None or row["repository_id"] != repository_id:
            raise NotFoundError(
                f"Comment target {row_id} not found in repository {repository_id}",
                repository_id=repository_id,
                **context,
            )

    def _check(self, user: str, comment: Comment, action: str) -> None:
        if not self._authorize(user, comment, action):
            raise ForbiddenError(
                f"{user or 'anonymous'} may not {action} comment {comment.id}",
                comment_id=comment.id,
                user=user,
                action=action,
            )
