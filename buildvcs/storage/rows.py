"""Row -> model conversion for the version database tables."""

from __future__ import annotations

import sqlite3

from buildvcs.models import Branch, Comment, Commit, MergeRequest, Repository, Tag
from buildvcs.storage.database import load_json


def to_repository(row: sqlite3.Row) -> Repository:
    return Repository.model_validate(dict(row))


def to_branch(row: sqlite3.Row) -> Branch:
    data = dict(row)
    data["is_default"] = bool(data["is_default"])
    return Branch.model_validate(data)


def to_commit(row: sqlite3.Row) -> Commit:
    data = dict(row)
    data["changes"] = load_json(data.get("changes"), {})
    return Commit.model_validate(data)


def to_tag(row: sqlite3.Row) -> Tag:
    return Tag.model_validate(dict(row))


def to_merge_request(row: sqlite3.Row) -> MergeRequest:
    return MergeRequest.model_validate(dict(row))


def to_comment(row: sqlite3.Row) -> Comment:
    return Comment.model_validate(dict(row))
