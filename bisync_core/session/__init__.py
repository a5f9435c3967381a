"""Session persistence and per-session sync orchestration."""

from bisync_core.session.session_manager import SessionManager
from bisync_core.session.session_store import (
    SessionNotFoundError,
    SessionRepository,
    StoredSession,
)

__all__ = ["SessionManager", "SessionNotFoundError", "SessionRepository", "StoredSession"]
