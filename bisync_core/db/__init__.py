"""SQLite persistence for analysis sessions."""

from bisync_core.db.migrations import migrate_to_latest
from bisync_core.db.schema import initialize_database

__all__ = ["initialize_database", "migrate_to_latest"]
