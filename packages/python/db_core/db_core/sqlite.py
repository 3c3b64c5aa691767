"""SQLite connection helper shared by relational repositories.

Connections are opened in autocommit mode (``isolation_level=None``) so the
repository controls transaction boundaries itself with explicit ``BEGIN`` /
``COMMIT`` / ``ROLLBACK`` statements.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from loguru import logger

from .settings import sqlite_settings


def connect_sqlite(path: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection with row access by column name and a busy timeout."""

    db_path = path or sqlite_settings.path
    conn = sqlite3.connect(
        db_path,
        timeout=sqlite_settings.busy_timeout_seconds,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    logger.debug(f"Opened SQLite connection to {db_path}")
    return conn
