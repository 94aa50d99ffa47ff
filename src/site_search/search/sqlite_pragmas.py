"""Shared SQLite PRAGMA helpers for the index database."""

from __future__ import annotations

import sqlite3


def apply_connection_pragmas(
    conn: sqlite3.Connection,
    *,
    read_only: bool,
    cache_size_kb: int = -16384,
    mmap_size_bytes: int = 67108864,
    busy_timeout_ms: int = 30000,
) -> None:
    """Apply WAL-friendly PRAGMAs to a reader or the single writer connection.

    Readers are put in ``query_only`` mode so the search path can never
    mutate the index.
    """
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute(f"PRAGMA cache_size = {cache_size_kb}")
    conn.execute(f"PRAGMA mmap_size = {mmap_size_bytes}")
    conn.execute("PRAGMA temp_store = MEMORY")
    if read_only:
        conn.execute("PRAGMA query_only = 1")
    else:
        conn.execute("PRAGMA journal_mode = WAL")
