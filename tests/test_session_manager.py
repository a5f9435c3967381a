from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Iterator, Sequence
from pathlib import Path

import pytest
from sqlmodel import Session

from bisync_core.analysis.models import AnalysisRecord
from bisync_core.analysis.schema import SECTION_FIELDS, RecordKind
from bisync_core.constants import CORE_SECTIONS, CURRENT_SCHEMA_VERSION
from bisync_core.db.models import AnalysisSessionRow
from bisync_core.db.schema import initialize_database
from bisync_core.errors import ConcurrentEditConflict, TranslationCallFailure
from bisync_core.llm.provider_base import TranslationDirection, TranslationProvider
from bisync_core.session.session_manager import SessionManager
from bisync_core.session.session_store import SessionNotFoundError, SessionRepository


class _RecordingProvider(TranslationProvider):
    def __init__(self) -> None:
        self.calls: list[tuple[TranslationDirection, list[str]]] = []
        self.fail = False
        self.yield_control = False

    async def translate_batch(
        self,
        texts: Sequence[str],
        direction: TranslationDirection,
    ) -> list[str]:
        self.calls.append((direction, list(texts)))
        if self.yield_control:
            await asyncio.sleep(0)
        if self.fail:
            raise TimeoutError("translation timed out")
        prefix = "KO:" if direction is TranslationDirection.TO_CACHE else "EN:"
        return [f"{prefix}{text}" for text in texts]


class _GlossaryProvider(_RecordingProvider):
    async def translate_batch(
        self,
        texts: Sequence[str],
        direction: TranslationDirection,
    ) -> list[str]:
        results = await super().translate_batch(texts, direction)
        if direction is TranslationDirection.TO_SOURCE:
            return ["subtle backlight" for _ in texts]
        return results


def _record(mood: str = "happy") -> AnalysisRecord:
    sections = {
        name: {field: f"{field} value" for field in SECTION_FIELDS[name]}
        for name in CORE_SECTIONS
    }
    sections["style"]["mood"] = mood
    return AnalysisRecord(kind=RecordKind.STYLE, sections=sections, negative_prompt="blurry")


@pytest.fixture
def repository(tmp_path: Path) -> Iterator[SessionRepository]:
    repo = SessionRepository(tmp_path / "sessions.db")
    yield repo
    repo.close()


def test_database_is_migrated_to_current_version(tmp_path: Path) -> None:
    db_path = tmp_path / "sessions.db"
    engine = initialize_database(db_path)
    engine.dispose()

    with sqlite3.connect(db_path) as conn:
        version = conn.execute("SELECT value FROM schema_meta WHERE key='schema_version'").fetchone()
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}

    assert version == (str(CURRENT_SCHEMA_VERSION),)
    assert {"schema_meta", "analysis_sessions"} <= tables

def test_repository_create_list_delete(repository: SessionRepository) -> None:
    first = repository.create(name="Hero sheet", kind="character")
    second = repository.create(name="Title logo", kind=RecordKind.LOGO)

    assert first.kind is RecordKind.CHARACTER
    assert first.record is None and first.cache is None
    assert {item.id for item in repository.list()} == {first.id, second.id}

    assert repository.delete(first.id) is True
    assert repository.delete(first.id) is False
    with pytest.raises(SessionNotFoundError):
        repository.get(first.id)

    with pytest.raises(ValueError):
        repository.create(name="   ")


def test_save_analysis_persists_record_and_cache(repository: SessionRepository) -> None:
    provider = _RecordingProvider()
    manager = SessionManager(repository, provider)
    session_id = repository.create(name="Watercolor girl").id

    result = asyncio.run(manager.save_analysis(session_id, _record()))
    stored = repository.get(session_id)

    assert stored.record == result.record
    assert stored.cache == result.cache
    assert stored.cache.sections["style"]["mood"] == "KO:happy"
    assert len(provider.calls) == 1

    with Session(repository.engine) as session:
        row = session.get(AnalysisSessionRow, session_id)
        assert row is not None
        assert "KO:happy" in row.cache_json


def test_unchanged_save_is_skipped(repository: SessionRepository) -> None:
    provider = _RecordingProvider()
    manager = SessionManager(repository, provider)
    session_id = repository.create(name="Watercolor girl").id

    asyncio.run(manager.save_analysis(session_id, _record()))
    asyncio.run(manager.save_analysis(session_id, _record()))

    assert len(provider.calls) == 1


def test_failed_save_keeps_previous_state(repository: SessionRepository) -> None:
    provider = _RecordingProvider()
    manager = SessionManager(repository, provider)
    session_id = repository.create(name="Watercolor girl").id
    asyncio.run(manager.save_analysis(session_id, _record()))
    before = repository.get(session_id)

    provider.fail = True
    with pytest.raises(TranslationCallFailure):
        asyncio.run(manager.save_analysis(session_id, _record(mood="sad")))

    after = repository.get(session_id)
    assert after.record == before.record
    assert after.cache == before.cache


def test_schedule_save_keeps_only_the_latest_request(repository: SessionRepository) -> None:
    provider = _RecordingProvider()
    manager = SessionManager(repository, provider, autosave_delay_seconds=0.05)
    session_id = repository.create(name="Watercolor girl").id

    async def scenario() -> None:
        first = manager.schedule_save(session_id, _record(mood="sad"))
        second = manager.schedule_save(session_id, _record(mood="calm"))
        assert manager.pending_save(session_id) is second
        await manager.flush()
        assert first.cancelled()
        assert manager.pending_save(session_id) is None

    asyncio.run(scenario())

    stored = repository.get(session_id)
    assert stored.record is not None
    assert stored.record.sections["style"]["mood"] == "calm"
    assert len(provider.calls) == 1


def test_managers_do_not_share_pending_saves(tmp_path: Path) -> None:
    repo = SessionRepository(tmp_path / "sessions.db")
    first = SessionManager(repo, _RecordingProvider(), autosave_delay_seconds=0.01)
    second = SessionManager(repo, _RecordingProvider(), autosave_delay_seconds=0.01)
    session_id = repo.create(name="Shared").id

    async def scenario() -> None:
        first.schedule_save(session_id, _record())
        assert second.pending_save(session_id) is None
        await first.flush()

    try:
        asyncio.run(scenario())
    finally:
        repo.close()


def test_edit_field_is_persisted(repository: SessionRepository) -> None:
    provider = _RecordingProvider()
    manager = SessionManager(repository, provider)
    session_id = repository.create(name="Watercolor girl").id
    asyncio.run(manager.save_analysis(session_id, _record()))

    asyncio.run(manager.edit_field(session_id, "style", "mood", "몽환적인"))

    stored = repository.get(session_id)
    assert stored.record.sections["style"]["mood"] == "EN:몽환적인"
    assert stored.cache.sections["style"]["mood"] == "몽환적인"
    assert stored.cache.positive_prompt is None
    assert manager.coordinator(session_id) is manager.coordinator(session_id)


def test_edit_requires_an_analysis(repository: SessionRepository) -> None:
    manager = SessionManager(repository, _RecordingProvider())
    session_id = repository.create(name="Empty").id

    with pytest.raises(RuntimeError):
        asyncio.run(manager.edit_field(session_id, "style", "mood", "calm"))


def test_edit_survives_a_save_started_before_it(repository: SessionRepository) -> None:
    provider = _RecordingProvider()
    provider.yield_control = True
    manager = SessionManager(repository, provider)
    session_id = repository.create(name="Watercolor girl").id
    asyncio.run(manager.save_analysis(session_id, _record(mood="happy")))

    async def scenario() -> None:
        save = asyncio.create_task(manager.save_analysis(session_id, _record(mood="sad")))
        await manager.edit_field(session_id, "character", "hair", "long red hair")
        await save

    asyncio.run(scenario())

    stored = repository.get(session_id)
    assert stored.record.sections["style"]["mood"] == "sad"
    assert stored.record.sections["character"]["hair"] == "long red hair"
    assert stored.cache.sections["style"]["mood"] == "KO:sad"
    assert stored.cache.sections["character"]["hair"] == "KO:long red hair"
    assert stored.cache.positive_prompt is not None


def test_korean_edit_keeps_its_cache_text_when_section_is_rebuilt(
    repository: SessionRepository,
) -> None:
    manager = SessionManager(repository, _GlossaryProvider())
    session_id = repository.create(name="Watercolor girl").id
    asyncio.run(manager.save_analysis(session_id, _record()))
    asyncio.run(manager.edit_field(session_id, "style", "lighting", "은은한 역광"))

    asyncio.run(manager.save_analysis(session_id, _record(mood="sad")))

    stored = repository.get(session_id)
    assert stored.record.sections["style"]["lighting"] == "subtle backlight"
    assert stored.record.sections["style"]["mood"] == "sad"
    assert stored.cache.sections["style"]["lighting"] == "은은한 역광"
    assert stored.cache.sections["style"]["mood"] == "KO:sad"


def test_completed_save_releases_edited_fields(repository: SessionRepository) -> None:
    manager = SessionManager(repository, _RecordingProvider())
    session_id = repository.create(name="Watercolor girl").id
    asyncio.run(manager.save_analysis(session_id, _record()))
    asyncio.run(manager.edit_field(session_id, "character", "hair", "long red hair"))
    asyncio.run(manager.save_analysis(session_id, _record(mood="sad")))

    later = _record(mood="sad")
    later.sections["character"]["hair"] = "short bob"
    asyncio.run(manager.save_analysis(session_id, later))

    stored = repository.get(session_id)
    assert stored.record.sections["character"]["hair"] == "short bob"
    assert stored.cache.sections["character"]["hair"] == "KO:short bob"


def test_cancel_edit_after_failed_commit(repository: SessionRepository) -> None:
    provider = _RecordingProvider()
    manager = SessionManager(repository, provider)
    session_id = repository.create(name="Watercolor girl").id
    asyncio.run(manager.save_analysis(session_id, _record()))

    provider.fail = True
    with pytest.raises(TranslationCallFailure):
        asyncio.run(manager.edit_field(session_id, "style", "mood", "calm"))
    provider.fail = False

    with pytest.raises(ConcurrentEditConflict):
        asyncio.run(manager.edit_field(session_id, "character", "hair", "braids"))

    manager.cancel_edit(session_id)
    asyncio.run(manager.edit_field(session_id, "character", "hair", "braids"))

    stored = repository.get(session_id)
    assert stored.record.sections["style"]["mood"] == "happy"
    assert stored.record.sections["character"]["hair"] == "braids"
