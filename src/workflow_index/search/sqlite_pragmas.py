"""PRAGMA helpers for the index store's reader and writer connections."""

from __future__ import annotations

import sqlite3


def apply_read_pragmas(
    conn: sqlite3.Connection,
    *,
    busy_timeout_ms: int = 30000,
    cache_size_kb: int = -16384,
    query_only: bool = True,
) -> None:
    """Reader connections never write; WAL lets them run beside the writer."""
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    conn.execute(f"PRAGMA cache_size = {int(cache_size_kb)}")
    conn.execute("PRAGMA temp_store = MEMORY")
    if query_only:
        conn.execute("PRAGMA query_only = 1")


def apply_write_pragmas(
    conn: sqlite3.Connection,
    *,
    busy_timeout_ms: int = 30000,
    cache_size_kb: int = -16384,
) -> None:
    """Switch the database to WAL so readers never block on the single writer."""
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute(f"PRAGMA cache_size = {int(cache_size_kb)}")
    conn.execute("PRAGMA temp_store = MEMORY")
