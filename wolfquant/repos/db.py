"""Database initialization and connection management.

Runs migrations on first boot, provides connection factory.
"""

import contextlib
import pathlib
import sqlite3
from typing import Iterator

from wolfquant.errors import PersistenceError


_MIGRATION_DIR = pathlib.Path(__file__).resolve().parent.parent.parent / "db" / "migrations"


def init_db(db_path: str) -> None:
    """Initialize the database by running all migration scripts.

    Creates the parent directory of *db_path* when it does not exist.
    Every migration uses ``IF NOT EXISTS`` so re-running is harmless.

    Args:
        db_path: Path to the SQLite database file.
    """
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        for migration_file in sorted(_MIGRATION_DIR.glob("*.sql")):
            sql = migration_file.read_text(encoding="utf-8")
            conn.executescript(sql)
    except sqlite3.Error as exc:
        raise PersistenceError(f"Migration failed: {exc}") from exc
    finally:
        conn.close()


def get_connection(db_path: str) -> sqlite3.Connection:
    """Return a new SQLite connection with row-factory enabled.

    Callers are responsible for closing the connection.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


@contextlib.contextmanager
def transaction(db_path: str) -> Iterator[sqlite3.Connection]:
    """Yield a connection, commit on success, roll back and close always.

    ``sqlite3.Error`` is re-raised as ``PersistenceError``.
    """
    try:
        conn = get_connection(db_path)
    except sqlite3.Error as exc:
        raise PersistenceError(f"Cannot open database {db_path}: {exc}") from exc
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        raise PersistenceError(str(exc)) from exc
    finally:
        conn.close()
