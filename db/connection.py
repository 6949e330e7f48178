"""SQLite connection helpers."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from config.settings import resolve_db_path
from db.migrations import ensure_schema


def connect(db_path: str | None = None) -> sqlite3.Connection:
    """Open a connection with the schema in place.

    Connections run in autocommit mode; multi-statement writes go through
    ``transaction``.
    """
    conn = sqlite3.connect(db_path or resolve_db_path(), check_same_thread=False, timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    ensure_schema(conn)
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Cursor]:
    cur = conn.cursor()
    cur.execute("BEGIN IMMEDIATE")
    try:
        yield cur
    except Exception:
        logging.exception("Transaction rolled back")
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
