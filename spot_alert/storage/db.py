"""
Database connection management.

Every repository call opens its own short-lived SQLite connection, so
concurrent requests only ever contend on single-row inserts.
"""

import sqlite3
from pathlib import Path

# Seconds a writer waits for a competing insert to release the database lock
BUSY_TIMEOUT = 5.0


def get_connection(db_path: str = "spotalert.db") -> sqlite3.Connection:
    """Open a SQLite connection to the SpotAlert database.

    Parent directories are created on demand so a fresh ``--db`` path works.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path), timeout=BUSY_TIMEOUT)
