from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from bisync_core.db.migrations import migrate_to_latest

SQLITE_BUSY_TIMEOUT_MS = 5000


def _enable_shared_access(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def initialize_database(db_path: Path) -> Engine:
    """Open the session database at ``db_path`` and migrate it to the latest schema.

    The file and its parent directory are created on first use.
    Connections use WAL mode with a busy timeout.
    """

    resolved = Path(db_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(f"sqlite+pysqlite:///{resolved.as_posix()}")
    event.listen(engine, "connect", _enable_shared_access)
    migrate_to_latest(engine)
    return engine
