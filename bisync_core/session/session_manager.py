from __future__ import annotations

import asyncio
import logging

from bisync_core.analysis.models import AnalysisRecord, FieldRef, TranslationCache
from bisync_core.analysis.prompt_builder import build_positive_prompt
from bisync_core.errors import BisyncError
from bisync_core.llm.provider_base import TranslationProvider
from bisync_core.session.session_store import SessionRepository
from bisync_core.sync.dispatcher import PromptBuilder
from bisync_core.sync.engine import SyncEngine
from bisync_core.sync.field_editor import FieldEditCoordinator, resolve_field
from bisync_core.sync.plan import SyncResult

logger = logging.getLogger(__name__)


def _carries_field(record: AnalysisRecord, ref: FieldRef) -> bool:
    return ref.is_scalar or record.has_section(ref.section)


class SessionManager:
    """Owns the per-session state around the sync engine.

    All maps are instance state keyed by session id: pending debounced saves,
    one edit coordinator and one lock per session, and the fields edited since
    the session's last completed save. Saves and edits on the same session run
    one at a time; edits on different sessions never block each other.
    """

    def __init__(
        self,
        repository: SessionRepository,
        provider: TranslationProvider,
        *,
        prompt_builder: PromptBuilder = build_positive_prompt,
        autosave_delay_seconds: float = 1.0,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.autosave_delay_seconds = autosave_delay_seconds
        self._engine = SyncEngine(provider, prompt_builder=prompt_builder)
        self._pending_saves: dict[str, asyncio.Task[SyncResult]] = {}
        self._running_saves: set[asyncio.Task[SyncResult]] = set()
        self._coordinators: dict[str, FieldEditCoordinator] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._edited_fields: dict[str, set[FieldRef]] = {}

    def coordinator(self, session_id: str) -> FieldEditCoordinator:
        coordinator = self._coordinators.get(session_id)
        if coordinator is None:
            coordinator = FieldEditCoordinator(self.provider)
            self._coordinators[session_id] = coordinator
        return coordinator

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def pending_save(self, session_id: str) -> asyncio.Task[SyncResult] | None:
        return self._pending_saves.get(session_id)

    async def save_analysis(self, session_id: str, new_record: AnalysisRecord) -> SyncResult:
        """Synchronize ``new_record`` into the stored session.

        Fields edited through :meth:`edit_field` since the last completed save
        keep their edited values, so a save built from an older record never
        reverts them.
        """

        async with self._lock(session_id):
            stored = self.repository.get(session_id)
            edited = {
                ref
                for ref in self._edited_fields.get(session_id, ())
                if _carries_field(new_record, ref)
            }
            if stored.record is not None:
                for ref in edited:
                    new_record = new_record.with_field(ref, stored.record.get_field(ref))

            change_set = self._engine.detect_changed_sections(stored.record, new_record)
            if not change_set.has_changes and stored.record is not None and stored.cache is not None:
                logger.info("Session %s unchanged; save skipped", session_id)
                self._edited_fields.pop(session_id, None)
                return SyncResult(record=stored.record, cache=stored.cache)

            result = await self._engine.synchronize(new_record, stored.cache, change_set)
            cache = _restore_edited(result.cache, stored.cache, edited)
            if cache is not result.cache:
                result = SyncResult(
                    record=result.record,
                    cache=cache,
                    translated_fields=result.translated_fields,
                )
            self.repository.save(session_id, record=result.record, cache=result.cache)
            self._edited_fields.pop(session_id, None)
            return result

    def schedule_save(
        self,
        session_id: str,
        new_record: AnalysisRecord,
        *,
        delay: float | None = None,
    ) -> asyncio.Task[SyncResult]:
        """Debounce saves per session; a newer request replaces a waiting one.

        A save whose delay has elapsed is no longer replaceable and runs to
        completion.
        """

        pending = self._pending_saves.get(session_id)
        if pending is not None and not pending.done() and pending not in self._running_saves:
            logger.debug("Superseding pending save for session %s", session_id)
            pending.cancel()

        wait = self.autosave_delay_seconds if delay is None else delay
        task = asyncio.get_running_loop().create_task(
            self._debounced_save(session_id, new_record, wait)
        )
        self._pending_saves[session_id] = task
        return task

    async def _debounced_save(
        self,
        session_id: str,
        new_record: AnalysisRecord,
        delay: float,
    ) -> SyncResult:
        task = asyncio.current_task()
        try:
            await asyncio.sleep(delay)
            self._running_saves.add(task)
            return await self.save_analysis(session_id, new_record)
        finally:
            self._running_saves.discard(task)
            if self._pending_saves.get(session_id) is task:
                del self._pending_saves[session_id]

    async def flush(self) -> None:
        """Wait for every scheduled save; superseded saves are ignored."""

        while self._pending_saves or self._running_saves:
            tasks = {*self._pending_saves.values(), *self._running_saves}
            await asyncio.gather(*tasks, return_exceptions=True)

    async def edit_field(
        self,
        session_id: str,
        section: str,
        field: str,
        text: str,
    ) -> SyncResult:
        async with self._lock(session_id):
            stored = self.repository.get(session_id)
            if stored.record is None:
                raise BisyncError(f"Session '{session_id}' has no analysis to edit.")

            ref = resolve_field(section, field, stored.record)
            result = await self.coordinator(session_id).edit(
                section, field, text, stored.record, stored.cache
            )
            self.repository.save(session_id, record=result.record, cache=result.cache)
            self._edited_fields.setdefault(session_id, set()).add(ref)
            return result

    def cancel_edit(self, session_id: str) -> None:
        """Drop an uncommitted edit, e.g. after its commit failed."""

        coordinator = self._coordinators.get(session_id)
        if coordinator is not None:
            coordinator.cancel()


def _restore_edited(
    cache: TranslationCache,
    stored_cache: TranslationCache | None,
    edited: set[FieldRef],
) -> TranslationCache:
    if stored_cache is None:
        return cache
    for ref in edited:
        value = stored_cache.get_field(ref)
        if value is not None and value != cache.get_field(ref):
            cache = cache.with_field(ref, value)
    return cache
