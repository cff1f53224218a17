"""SQLite-backed index store with a synchronized FTS5 full-text shadow.

The ``workflows`` table is the single source of truth; ``workflows_fts`` is a
projection of its searchable fields keyed by the same rowid. Every write
replaces both inside one ``BEGIN IMMEDIATE`` transaction, so readers never
observe a record without its shadow row (or the reverse).

Concurrency follows the usual SQLite WAL layout:
- a single writer connection guarded by a lock (the indexing pipeline)
- thread-local query-only reader connections (query, analytics, similarity)

Reads that must agree with each other (a page and its total, the parts of an
analytics snapshot) run inside ``read_snapshot()``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Any

from workflow_index.domain.model import WorkflowRecord
from workflow_index.errors import (
    InternalStoreError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
    WorkflowIndexError,
)
from workflow_index.search.sqlite_pragmas import apply_read_pragmas, apply_write_pragmas


logger = logging.getLogger(__name__)

_RECORD_COLUMNS = (
    "filename",
    "name",
    "workflow_id",
    "active",
    "description",
    "trigger_type",
    "complexity",
    "node_count",
    "integrations",
    "tags",
    "created_at",
    "updated_at",
    "file_hash",
    "file_size",
    "analyzed_at",
)

_SELECT_RECORDS = "SELECT " + ", ".join(f"w.{column}" for column in _RECORD_COLUMNS) + " FROM workflows w"

_UPSERT_RECORD = (
    "INSERT INTO workflows (" + ", ".join(_RECORD_COLUMNS) + ") "
    "VALUES (" + ", ".join("?" for _ in _RECORD_COLUMNS) + ") "
    "ON CONFLICT(filename) DO UPDATE SET "
    + ", ".join(f"{column} = excluded.{column}" for column in _RECORD_COLUMNS if column != "filename")
)

_REPLACE_SHADOW = (
    "INSERT OR REPLACE INTO workflows_fts (rowid, filename, name, description, integrations, tags) "
    "VALUES (?, ?, ?, ?, ?, ?)"
)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS workflows (
        id INTEGER PRIMARY KEY,
        filename TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        workflow_id TEXT NOT NULL DEFAULT '',
        active INTEGER NOT NULL DEFAULT 0,
        description TEXT NOT NULL DEFAULT '',
        trigger_type TEXT NOT NULL,
        complexity TEXT NOT NULL,
        node_count INTEGER NOT NULL DEFAULT 0,
        integrations TEXT NOT NULL DEFAULT '[]',
        tags TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT '',
        file_hash TEXT NOT NULL DEFAULT '',
        file_size INTEGER NOT NULL DEFAULT 0,
        analyzed_at TEXT
    );

    CREATE VIRTUAL TABLE IF NOT EXISTS workflows_fts USING fts5(
        filename,
        name,
        description,
        integrations,
        tags
    );

    CREATE INDEX IF NOT EXISTS idx_workflows_trigger_type ON workflows(trigger_type);
    CREATE INDEX IF NOT EXISTS idx_workflows_complexity ON workflows(complexity);
    CREATE INDEX IF NOT EXISTS idx_workflows_active ON workflows(active);
    CREATE INDEX IF NOT EXISTS idx_workflows_node_count ON workflows(node_count);
    CREATE INDEX IF NOT EXISTS idx_workflows_filename ON workflows(filename);
"""

SORT_CLAUSES = {
    "name": "w.name ASC, w.filename ASC",
    "node_count": "w.node_count DESC, w.filename ASC",
    "analyzed_at": "w.analyzed_at DESC, w.filename ASC",
}

_GROUPABLE_COLUMNS = frozenset({"trigger_type", "complexity", "active"})


@dataclass(frozen=True, slots=True)
class SearchPredicate:
    """Conjunctive filter over workflow records.

    ``match`` is an FTS5 expression evaluated against the shadow table;
    every other field narrows the result further. Empty fields match all.
    """

    match: str | None = None
    trigger_types: tuple[str, ...] = ()
    complexity: str | None = None
    active_only: bool = False
    integrations: tuple[str, ...] = ()
    filenames: tuple[str, ...] | None = None
    min_nodes: int | None = None
    max_nodes: int | None = None
    exclude_filename: str | None = None

    def to_sql(self) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if self.match:
            clauses.append("w.id IN (SELECT rowid FROM workflows_fts WHERE workflows_fts MATCH ?)")
            params.append(self.match)
        if self.trigger_types:
            clauses.append(f"w.trigger_type IN ({', '.join('?' for _ in self.trigger_types)})")
            params.extend(self.trigger_types)
        if self.complexity:
            clauses.append("w.complexity = ?")
            params.append(self.complexity)
        if self.active_only:
            clauses.append("w.active = 1")
        for integration in self.integrations:
            clauses.append("EXISTS (SELECT 1 FROM json_each(w.integrations) WHERE json_each.value = ?)")
            params.append(integration)
        if self.filenames is not None:
            clauses.append("w.filename IN (SELECT value FROM json_each(?))")
            params.append(json.dumps(list(self.filenames)))
        if self.min_nodes is not None:
            clauses.append("w.node_count >= ?")
            params.append(self.min_nodes)
        if self.max_nodes is not None:
            clauses.append("w.node_count <= ?")
            params.append(self.max_nodes)
        if self.exclude_filename is not None:
            clauses.append("w.filename != ?")
            params.append(self.exclude_filename)
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params


MATCH_ALL = SearchPredicate()


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Ignoring malformed analyzed_at value %r", value)
        return None


def _record_params(record: WorkflowRecord) -> tuple[Any, ...]:
    return (
        record.filename,
        record.name,
        record.workflow_id,
        1 if record.active else 0,
        record.description,
        record.trigger_type,
        record.complexity,
        record.node_count,
        json.dumps(record.integrations),
        json.dumps(record.tags),
        record.created_at,
        record.updated_at,
        record.file_hash,
        record.file_size,
        _format_timestamp(record.analyzed_at),
    )


def _row_to_record(row: sqlite3.Row) -> WorkflowRecord:
    return WorkflowRecord(
        filename=row["filename"],
        name=row["name"],
        workflow_id=row["workflow_id"] or "",
        active=bool(row["active"]),
        description=row["description"] or "",
        trigger_type=row["trigger_type"],
        complexity=row["complexity"],
        node_count=int(row["node_count"] or 0),
        integrations=json.loads(row["integrations"] or "[]"),
        tags=json.loads(row["tags"] or "[]"),
        created_at=row["created_at"] or "",
        updated_at=row["updated_at"] or "",
        file_hash=row["file_hash"] or "",
        file_size=int(row["file_size"] or 0),
        analyzed_at=_parse_timestamp(row["analyzed_at"]),
    )


def translate_sqlite_error(exc: sqlite3.Error, db_path: Path) -> WorkflowIndexError:
    """Map a raw SQLite failure onto the core error taxonomy."""
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, sqlite3.OperationalError):
        if "fts5" in lowered:
            return ValidationError("query", f"unsupported full-text expression ({message})")
        if "no such table" in lowered or "unable to open" in lowered:
            return StoreUnavailableError(f"Index store at {db_path} is not initialized: {message}")
        return InternalStoreError(f"SQLite operation failed on {db_path}: {message}")
    if isinstance(exc, sqlite3.DatabaseError) and not isinstance(exc, sqlite3.IntegrityError):
        return StoreUnavailableError(f"Index store at {db_path} is unreadable: {message}")
    return InternalStoreError(f"SQLite operation failed on {db_path}: {message}")


def _end_read_transaction(conn: sqlite3.Connection) -> None:
    try:
        if conn.in_transaction:
            conn.execute("COMMIT")
    except sqlite3.ProgrammingError:
        pass  # Connection was discarded by a failed read inside the snapshot


class ReaderPool:
    """Thread-local, query-only connections."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 30000) -> None:
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms
        self._local = threading.local()

    def get(self) -> sqlite3.Connection:
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = self._create_connection()
            self._local.connection = conn
        return conn

    def _create_connection(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            raise StoreUnavailableError(f"Index store not found at {self.db_path}")
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            apply_read_pragmas(conn, busy_timeout_ms=self.busy_timeout_ms)
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def discard(self) -> None:
        """Drop the current thread's connection so the next read reconnects."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            try:
                conn.close()
            except sqlite3.Error:
                pass  # Connection already unusable
            self._local.connection = None


class WorkflowIndexStore:
    """Durable keyed store of workflow records plus their full-text shadow."""

    def __init__(self, db_path: str | Path, *, busy_timeout_ms: int = 30000) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._readers = ReaderPool(self.db_path, busy_timeout_ms=busy_timeout_ms)
        self._write_lock = threading.Lock()
        self._writer: sqlite3.Connection | None = None

    def __enter__(self) -> WorkflowIndexStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # --- lifecycle --------------------------------------------------------

    def initialize(self) -> None:
        """Create the database file, tables and indexes if they do not exist yet."""
        with self._write_lock:
            self._writer_connection()

    def close(self) -> None:
        self._readers.discard()
        with self._write_lock:
            if self._writer is not None:
                try:
                    self._writer.close()
                except sqlite3.Error as exc:
                    logger.warning("Failed to close writer connection for %s: %s", self.db_path, exc)
                self._writer = None

    def _writer_connection(self) -> sqlite3.Connection:
        if self._writer is not None:
            return self._writer
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot create store directory {self.db_path.parent}: {exc}") from exc
        conn: sqlite3.Connection | None = None
        try:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            conn.row_factory = sqlite3.Row
            apply_write_pragmas(conn, busy_timeout_ms=self.busy_timeout_ms)
            conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            if conn is not None:
                conn.close()
            raise translate_sqlite_error(exc, self.db_path) from exc
        logger.debug("Index store ready at %s", self.db_path)
        self._writer = conn
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._write_lock:
            conn = self._writer_connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise translate_sqlite_error(exc, self.db_path) from exc
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._readers.get()
        except sqlite3.Error as exc:
            error = translate_sqlite_error(exc, self.db_path)
            if isinstance(error, StoreUnavailableError):
                self._readers.discard()
            raise error from exc

    @contextmanager
    def read_snapshot(self) -> Iterator[None]:
        """Serve every read on this thread inside the block from one database snapshot.

        Blocks nest; only the outermost one opens and ends the read transaction.
        """
        with self._reading() as conn:
            if conn.in_transaction:
                yield
                return
            conn.execute("BEGIN DEFERRED")
            try:
                yield
            finally:
                _end_read_transaction(conn)

    # --- writes -----------------------------------------------------------

    def upsert(self, record: WorkflowRecord) -> None:
        """Insert or wholesale-replace a record and its shadow row atomically."""
        with self._transaction() as conn:
            conn.execute(_UPSERT_RECORD, _record_params(record))
            rowid = conn.execute("SELECT id FROM workflows WHERE filename = ?", (record.filename,)).fetchone()[0]
            conn.execute(
                _REPLACE_SHADOW,
                (
                    rowid,
                    record.filename,
                    record.name,
                    record.description,
                    " ".join(record.integrations),
                    " ".join(record.tags),
                ),
            )

    def delete(self, filename: str) -> bool:
        """Remove a record and its shadow row; returns False when nothing was stored."""
        with self._transaction() as conn:
            row = conn.execute("SELECT id FROM workflows WHERE filename = ?", (filename,)).fetchone()
            if row is None:
                return False
            conn.execute("DELETE FROM workflows_fts WHERE rowid = ?", (row[0],))
            conn.execute("DELETE FROM workflows WHERE id = ?", (row[0],))
            return True

    # --- reads ------------------------------------------------------------

    def fetch(self, filename: str) -> WorkflowRecord | None:
        with self._reading() as conn:
            row = conn.execute(_SELECT_RECORDS + " WHERE w.filename = ?", (filename,)).fetchone()
        return _row_to_record(row) if row else None

    def get(self, filename: str) -> WorkflowRecord:
        record = self.fetch(filename)
        if record is None:
            raise NotFoundError(filename)
        return record

    def search(
        self,
        predicate: SearchPredicate = MATCH_ALL,
        *,
        sort: str = "name",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[WorkflowRecord]:
        where, params = predicate.to_sql()
        order = SORT_CLAUSES.get(sort, SORT_CLAUSES["name"])
        sql = f"{_SELECT_RECORDS}{where} ORDER BY {order} LIMIT ? OFFSET ?"
        with self._reading() as conn:
            rows = conn.execute(sql, (*params, -1 if limit is None else limit, offset)).fetchall()
        return [_row_to_record(row) for row in rows]

    def count(self, predicate: SearchPredicate = MATCH_ALL) -> int:
        where, params = predicate.to_sql()
        with self._reading() as conn:
            return int(conn.execute(f"SELECT COUNT(*) FROM workflows w{where}", params).fetchone()[0])

    def records(self, predicate: SearchPredicate = MATCH_ALL) -> list[WorkflowRecord]:
        """All matching records ordered by filename."""
        where, params = predicate.to_sql()
        with self._reading() as conn:
            rows = conn.execute(f"{_SELECT_RECORDS}{where} ORDER BY w.filename", params).fetchall()
        return [_row_to_record(row) for row in rows]

    def shadow_filenames(self, match: str) -> list[str]:
        """Filenames whose shadow row matches an FTS5 expression."""
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT filename FROM workflows_fts WHERE workflows_fts MATCH ? ORDER BY filename", (match,)
            ).fetchall()
        return [row[0] for row in rows]

    def ranked_matches(self, match: str, *, limit: int) -> list[WorkflowRecord]:
        """Records whose shadow row matches an FTS5 expression, best full-text rank first."""
        sql = (
            "SELECT "
            + ", ".join(f"w.{column}" for column in _RECORD_COLUMNS)
            + " FROM workflows_fts JOIN workflows w ON w.id = workflows_fts.rowid"
            " WHERE workflows_fts MATCH ? ORDER BY workflows_fts.rank, w.filename LIMIT ?"
        )
        with self._reading() as conn:
            rows = conn.execute(sql, (match, limit)).fetchall()
        return [_row_to_record(row) for row in rows]

    def file_hashes(self) -> dict[str, str]:
        with self._reading() as conn:
            rows = conn.execute("SELECT filename, file_hash FROM workflows").fetchall()
        return {row[0]: row[1] for row in rows}

    # --- aggregates -------------------------------------------------------

    def totals(self, predicate: SearchPredicate = MATCH_ALL) -> tuple[int, int, int]:
        """Return ``(documents, active documents, summed node count)``."""
        where, params = predicate.to_sql()
        sql = f"SELECT COUNT(*), COALESCE(SUM(w.active), 0), COALESCE(SUM(w.node_count), 0) FROM workflows w{where}"
        with self._reading() as conn:
            total, active, nodes = conn.execute(sql, params).fetchone()
        return int(total), int(active), int(nodes)

    def total_nodes(self, predicate: SearchPredicate = MATCH_ALL) -> int:
        return self.totals(predicate)[2]

    def count_by(self, column: str, predicate: SearchPredicate = MATCH_ALL) -> dict[str, int]:
        if column not in _GROUPABLE_COLUMNS:
            raise ValueError(f"Cannot group workflows by {column!r}")
        where, params = predicate.to_sql()
        sql = f"SELECT w.{column}, COUNT(*) FROM workflows w{where} GROUP BY w.{column} ORDER BY w.{column}"
        with self._reading() as conn:
            rows = conn.execute(sql, params).fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    def integration_frequencies(self, predicate: SearchPredicate = MATCH_ALL) -> dict[str, int]:
        """Number of documents using each integration."""
        where, params = predicate.to_sql()
        sql = (
            "SELECT j.value, COUNT(*) FROM workflows w, json_each(w.integrations) j"
            f"{where} GROUP BY j.value ORDER BY j.value"
        )
        with self._reading() as conn:
            rows = conn.execute(sql, params).fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    def last_analyzed_at(self) -> datetime | None:
        with self._reading() as conn:
            value = conn.execute("SELECT MAX(analyzed_at) FROM workflows").fetchone()[0]
        return _parse_timestamp(value)
