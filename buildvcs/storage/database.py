"""VersionDatabase — SQLite-backed transactional store for the commit graph.

Uses stdlib sqlite3 only.  The engine talks to it through a handful of
generic primitives (insert, conditional update, point lookup, range query,
delete, transaction) so the managers never depend on connection details.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime
from pathlib import Path
from typing import Any, ContextManager, Iterator, Mapping, Sequence

from buildvcs.config import DEFAULT_BUSY_TIMEOUT
from buildvcs.errors import (
    ConflictError,
    IntegrityError,
    RetryableError,
    VersionControlError,
)

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS repositories (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    build_ref   TEXT NOT NULL UNIQUE,
    created_by  TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS commits (
    id               TEXT PRIMARY KEY,
    repository_id    TEXT NOT NULL REFERENCES repositories(id) ON DELETE CASCADE,
    branch_id        TEXT,
    parent_commit_id TEXT REFERENCES commits(id) DEFERRABLE INITIALLY DEFERRED,
    commit_hash      TEXT NOT NULL,
    author_id        TEXT NOT NULL,
    committer_id     TEXT NOT NULL,
    message          TEXT NOT NULL,
    changes          TEXT NOT NULL DEFAULT '{}',
    created_at       TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_commits_repo ON commits(repository_id, created_at);
CREATE INDEX IF NOT EXISTS idx_commits_parent ON commits(parent_commit_id);

CREATE TABLE IF NOT EXISTS snapshots (
    commit_id         TEXT PRIMARY KEY REFERENCES commits(id) ON DELETE CASCADE
                      DEFERRABLE INITIALLY DEFERRED,
    content_hash      TEXT NOT NULL,
    build_data        TEXT NOT NULL DEFAULT '{}',
    parts_data        TEXT NOT NULL DEFAULT '[]',
    analysis_data     TEXT,
    optimization_data TEXT NOT NULL DEFAULT '{}',
    created_at        TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_snapshots_hash ON snapshots(content_hash);

CREATE TABLE IF NOT EXISTS branches (
    id             TEXT PRIMARY KEY,
    repository_id  TEXT NOT NULL REFERENCES repositories(id) ON DELETE CASCADE,
    name           TEXT NOT NULL,
    description    TEXT NOT NULL DEFAULT '',
    is_default     INTEGER NOT NULL DEFAULT 0,
    head_commit_id TEXT REFERENCES commits(id) ON DELETE SET NULL
                   DEFERRABLE INITIALLY DEFERRED,
    created_by     TEXT NOT NULL,
    created_at     TEXT NOT NULL,
    UNIQUE (repository_id, name)
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_branches_default
    ON branches(repository_id) WHERE is_default = 1;

CREATE TABLE IF NOT EXISTS tags (
    id            TEXT PRIMARY KEY,
    repository_id TEXT NOT NULL REFERENCES repositories(id) ON DELETE CASCADE,
    commit_id     TEXT NOT NULL REFERENCES commits(id) ON DELETE CASCADE
                  DEFERRABLE INITIALLY DEFERRED,
    name          TEXT NOT NULL,
    description   TEXT NOT NULL DEFAULT '',
    created_by    TEXT NOT NULL,
    created_at    TEXT NOT NULL,
    UNIQUE (repository_id, name)
);

CREATE TABLE IF NOT EXISTS merge_requests (
    id               TEXT PRIMARY KEY,
    repository_id    TEXT NOT NULL REFERENCES repositories(id) ON DELETE CASCADE,
    source_branch_id TEXT NOT NULL,
    target_branch_id TEXT NOT NULL,
    title            TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    status           TEXT NOT NULL DEFAULT 'open'
                     CHECK (status IN ('open', 'merged', 'closed')),
    merge_commit_id  TEXT REFERENCES commits(id) ON DELETE SET NULL
                     DEFERRABLE INITIALLY DEFERRED,
    created_by       TEXT NOT NULL,
    assigned_to      TEXT,
    created_at       TEXT NOT NULL,
    merged_at        TEXT,
    CHECK (source_branch_id <> target_branch_id)
);
CREATE INDEX IF NOT EXISTS idx_mr_repo ON merge_requests(repository_id, status);

CREATE TABLE IF NOT EXISTS comments (
    id                TEXT PRIMARY KEY,
    repository_id     TEXT NOT NULL REFERENCES repositories(id) ON DELETE CASCADE,
    commit_id         TEXT REFERENCES commits(id) ON DELETE CASCADE
                      DEFERRABLE INITIALLY DEFERRED,
    merge_request_id  TEXT REFERENCES merge_requests(id) ON DELETE CASCADE,
    parent_comment_id TEXT REFERENCES comments(id) DEFERRABLE INITIALLY DEFERRED,
    author_id         TEXT NOT NULL,
    content           TEXT NOT NULL,
    created_at        TEXT NOT NULL,
    updated_at        TEXT,
    CHECK ((commit_id IS NULL) <> (merge_request_id IS NULL))
);
CREATE INDEX IF NOT EXISTS idx_comments_commit ON comments(commit_id);
CREATE INDEX IF NOT EXISTS idx_comments_mr ON comments(merge_request_id);
CREATE INDEX IF NOT EXISTS idx_comments_parent ON comments(parent_comment_id);
"""


def dump_json(value: Any) -> str | None:
    """Compact, key-sorted JSON for TEXT columns.  ``None`` stays NULL."""
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def load_json(text: str | None, default: Any = None) -> Any:
    if text is None:
        return default
    return json.loads(text)


def _adapt(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


def translate_error(exc: sqlite3.Error, **context: Any) -> VersionControlError:
    """Map a sqlite3 exception onto the engine's error kinds."""
    text = str(exc)
    lowered = text.lower()
    if isinstance(exc, sqlite3.OperationalError) and ("locked" in lowered or "busy" in lowered):
        return RetryableError(f"Database busy: {text}", **context)
    if isinstance(exc, sqlite3.IntegrityError):
        if "unique" in lowered:
            return ConflictError(f"Duplicate value: {text}", **context)
        return IntegrityError(f"Constraint violated: {text}", **context)
    if isinstance(exc, sqlite3.OperationalError) and "disk i/o" in lowered:
        return RetryableError(f"Storage unavailable: {text}", **context)
    return IntegrityError(f"Storage failure: {text}", **context)


class VersionDatabase:
    """Transactional store holding the whole version graph.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Use ``':memory:'`` for
        in-memory databases (useful for testing).
    busy_timeout:
        Seconds to wait for another process holding the write lock before
        the call fails with :class:`~buildvcs.errors.RetryableError`.

    A file database gets one connection per thread.  Under WAL a reader
    never waits for another thread's open transaction and only sees
    committed rows; writers serialize on ``BEGIN IMMEDIATE``.  An
    in-memory database lives inside a single connection, so that one is
    shared and guarded by a re-entrant lock held for a whole transaction.
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ) -> None:
        self._db_path = str(db_path)
        self._busy_timeout = busy_timeout
        self._shared = self._db_path == ":memory:"
        self._lock = threading.RLock()
        self._local = threading.local()
        self._shared_conn: sqlite3.Connection | None = None
        self._open: list[sqlite3.Connection] = []
        self._schema_ready = False

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def conn(self) -> sqlite3.Connection:
        """Lazy-initialise and return the calling thread's connection."""
        if self._shared:
            with self._lock:
                if self._shared_conn is None:
                    self._shared_conn = self._connect()
                return self._shared_conn
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._local.conn = self._connect()
        return conn

    def _connect(self) -> sqlite3.Connection:
        if not self._shared:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self._db_path,
            timeout=self._busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        with self._lock:
            if not self._schema_ready:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(_SCHEMA_SQL)
                self._schema_ready = True
            self._open.append(conn)
        logger.debug("Opened version database at %s", self._db_path)
        return conn

    def _guard(self) -> ContextManager[Any]:
        return self._lock if self._shared else nullcontext()

    def close(self) -> None:
        """Close every connection opened by this database."""
        with self._lock:
            for conn in self._open:
                conn.close()
            self._open.clear()
            self._shared_conn = None
            self._local = threading.local()
            self._schema_ready = False

    def __enter__(self) -> VersionDatabase:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- Transactions ----------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        """Whether the calling thread has a transaction open."""
        return getattr(self._local, "depth", 0) > 0

    @contextmanager
    def transaction(self) -> Iterator[VersionDatabase]:
        """Run the enclosed primitives as one atomic unit.

        Nested use joins the outer transaction.  Any exception rolls the
        whole unit back; sqlite3 errors are re-raised as engine errors.
        """
        with self._guard():
            local = self._local
            depth = getattr(local, "depth", 0)
            if depth:
                local.depth = depth + 1
                try:
                    yield self
                finally:
                    local.depth -= 1
                return

            conn = self.conn
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise translate_error(exc) from exc

            local.depth = 1
            try:
                yield self
                conn.execute("COMMIT")
            except BaseException as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                    logger.debug("Rolled back transaction: %s", exc)
                if isinstance(exc, sqlite3.Error):
                    raise translate_error(exc) from exc
                raise
            finally:
                local.depth = 0

    # -- Primitives ------------------------------------------------------------

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._guard():
            logger.debug("SQL %s %s", sql, params)
            try:
                return self.conn.execute(sql, [_adapt(p) for p in params])
            except sqlite3.Error as exc:
                if self.in_transaction:
                    # transaction() rolls back and translates
                    raise
                raise translate_error(exc) from exc

    def insert(self, table: str, row: Mapping[str, Any]) -> None:
        """Insert one row."""
        columns = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        self._execute(f"INSERT INTO {table} ({columns}) VALUES ({marks})", list(row.values()))

    def update_if(
        self,
        table: str,
        values: Mapping[str, Any],
        where: Mapping[str, Any],
    ) -> int:
        """Update rows matching every ``where`` predicate.

        Predicates use ``IS`` so ``None`` matches NULL.  Returns the number
        of rows changed; zero means the predicate no longer held.
        """
        assignments = ", ".join(f"{col} = ?" for col in values)
        clauses = " AND ".join(f"{col} IS ?" for col in where)
        cur = self._execute(
            f"UPDATE {table} SET {assignments} WHERE {clauses}",
            [*values.values(), *where.values()],
        )
        return cur.rowcount

    def get(self, table: str, row_id: str, *, key: str = "id") -> sqlite3.Row | None:
        """Point lookup by primary key."""
        return self.fetch_one(f"SELECT * FROM {table} WHERE {key} = ?", (row_id,))

    def find(
        self,
        table: str,
        where: Mapping[str, Any] | None = None,
        *,
        order_by: str = "created_at, rowid",
        limit: int | None = None,
    ) -> list[sqlite3.Row]:
        """Range query with equality predicates."""
        where = where or {}
        sql = f"SELECT * FROM {table}"
        if where:
            sql += " WHERE " + " AND ".join(f"{col} IS ?" for col in where)
        sql += f" ORDER BY {order_by}"
        params: list[Any] = list(where.values())
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return self.fetch_all(sql, params)

    def delete(self, table: str, where: Mapping[str, Any]) -> int:
        """Delete rows matching every predicate.  Returns the row count."""
        clauses = " AND ".join(f"{col} IS ?" for col in where)
        cur = self._execute(f"DELETE FROM {table} WHERE {clauses}", list(where.values()))
        return cur.rowcount

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        with self._guard():
            return self._execute(sql, params).fetchone()

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._guard():
            return self._execute(sql, params).fetchall()

    def count(self, table: str, where: Mapping[str, Any] | None = None) -> int:
        where = where or {}
        sql = f"SELECT COUNT(*) FROM {table}"
        if where:
            sql += " WHERE " + " AND ".join(f"{col} IS ?" for col in where)
        row = self.fetch_one(sql, list(where.values()))
        return row[0] if row else 0
