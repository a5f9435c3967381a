from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from bisync_core.analysis.models import AnalysisRecord, TranslationCache
from bisync_core.analysis.schema import RecordKind, coerce_kind
from bisync_core.db.models import AnalysisSessionRow
from bisync_core.db.schema import initialize_database
from bisync_core.errors import BisyncError

logger = logging.getLogger(__name__)


class SessionNotFoundError(BisyncError):
    """Raised when a session id does not exist in the workspace database."""


@dataclass(slots=True, frozen=True)
class StoredSession:
    id: str
    name: str
    kind: RecordKind
    record: AnalysisRecord | None
    cache: TranslationCache | None
    created_at: str
    updated_at: str


def _utc_now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def _dump(payload: dict | None) -> str | None:
    if payload is None:
        return None
    return json.dumps(payload, ensure_ascii=False, sort_keys=True)


def _to_stored(row: AnalysisSessionRow) -> StoredSession:
    kind = coerce_kind(row.kind)
    record = None
    if row.analysis_json:
        record = AnalysisRecord.from_dict(json.loads(row.analysis_json), kind=kind)
    cache = None
    if row.cache_json:
        cache = TranslationCache.from_dict(json.loads(row.cache_json))
    return StoredSession(
        id=row.id,
        name=row.name,
        kind=kind,
        record=record,
        cache=cache,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SessionRepository:
    """Analysis sessions stored in one SQLite file."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._engine: Engine | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = initialize_database(self.db_path)
        return self._engine

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def create(self, *, name: str, kind: RecordKind | str = RecordKind.STYLE) -> StoredSession:
        normalized_name = name.strip()
        if not normalized_name:
            raise ValueError("Session name must not be empty.")

        session_id = str(uuid4())
        now = _utc_now_iso()
        with self.engine.begin() as connection:
            connection.execute(
                text(
                    """
                    INSERT INTO analysis_sessions(
                        id, name, kind, analysis_json, cache_json, created_at, updated_at
                    ) VALUES (
                        :id, :name, :kind, NULL, NULL, :created_at, :updated_at
                    )
                    """
                ),
                {
                    "id": session_id,
                    "name": normalized_name,
                    "kind": coerce_kind(kind).value,
                    "created_at": now,
                    "updated_at": now,
                },
            )
        logger.info("Created session %s (%s)", session_id, normalized_name)
        return self.get(session_id)

    def get(self, session_id: str) -> StoredSession:
        with Session(self.engine) as session:
            row = session.get(AnalysisSessionRow, session_id)
            if row is None:
                raise SessionNotFoundError(f"Session '{session_id}' does not exist.")
            return _to_stored(row)

    def list(self) -> list[StoredSession]:
        with Session(self.engine) as session:
            statement = select(AnalysisSessionRow).order_by(
                col(AnalysisSessionRow.updated_at).desc(),
                col(AnalysisSessionRow.id),
            )
            return [_to_stored(row) for row in session.exec(statement).all()]

    def save(
        self,
        session_id: str,
        *,
        record: AnalysisRecord,
        cache: TranslationCache,
    ) -> StoredSession:
        """Store record and cache together in one transaction."""

        with self.engine.begin() as connection:
            result = connection.execute(
                text(
                    """
                    UPDATE analysis_sessions
                    SET kind = :kind,
                        analysis_json = :analysis_json,
                        cache_json = :cache_json,
                        updated_at = :updated_at
                    WHERE id = :id
                    """
                ),
                {
                    "id": session_id,
                    "kind": record.kind.value,
                    "analysis_json": _dump(record.to_dict()),
                    "cache_json": _dump(cache.to_dict()),
                    "updated_at": _utc_now_iso(),
                },
            )
            if result.rowcount == 0:
                raise SessionNotFoundError(f"Session '{session_id}' does not exist.")
        logger.debug("Saved session %s", session_id)
        return self.get(session_id)

    def delete(self, session_id: str) -> bool:
        with self.engine.begin() as connection:
            result = connection.execute(
                text("DELETE FROM analysis_sessions WHERE id = :id"),
                {"id": session_id},
            )
        return result.rowcount > 0
