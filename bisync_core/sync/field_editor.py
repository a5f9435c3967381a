from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from bisync_core.analysis.models import AnalysisRecord, FieldRef, TranslationCache
from bisync_core.constants import FIELD_POSITIVE_PROMPT, PROMPT_SOURCE_SECTIONS, SECTION_PROMPTS
from bisync_core.errors import ConcurrentEditConflict, SchemaMismatch
from bisync_core.llm.provider_base import TranslationDirection, TranslationProvider
from bisync_core.sync.dispatcher import run_batch
from bisync_core.sync.language import is_blank
from bisync_core.sync.plan import CUSTOM_PROMPT_REF, POSITIVE_PROMPT_REF, FieldSlot, SyncResult

logger = logging.getLogger(__name__)

RecordCallback = Callable[[AnalysisRecord], None]
CacheCallback = Callable[[TranslationCache], None]


class EditState(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"
    COMMITTING = "committing"


def resolve_field(section: str, field: str, record: AnalysisRecord) -> FieldRef:
    ref = FieldRef(section, field)
    if section == SECTION_PROMPTS and field == FIELD_POSITIVE_PROMPT:
        raise SchemaMismatch("The positive prompt is derived and cannot be edited directly.")
    record.get_field(ref)
    return ref


class FieldEditCoordinator:
    """Per-record single-field editor.

    At most one field is EDITING or COMMITTING at a time. A failed commit
    returns to EDITING with the buffer intact so the user can retry.
    """

    def __init__(
        self,
        provider: TranslationProvider,
        *,
        on_record_update: RecordCallback | None = None,
        on_cache_update: CacheCallback | None = None,
    ) -> None:
        self._provider = provider
        self.on_record_update = on_record_update
        self.on_cache_update = on_cache_update
        self._state = EditState.VIEWING
        self._field: FieldRef | None = None
        self._buffer = ""

    @property
    def state(self) -> EditState:
        return self._state

    @property
    def editing_field(self) -> FieldRef | None:
        return self._field

    @property
    def buffer(self) -> str:
        return self._buffer

    def begin_edit(
        self,
        section: str,
        field: str,
        record: AnalysisRecord,
        cache: TranslationCache | None,
    ) -> str:
        """Enter EDITING for one field and return the seeded buffer.

        The buffer starts from the cached-language value when the cache has
        one, otherwise from the record.
        """

        ref = resolve_field(section, field, record)
        if self._state is EditState.EDITING and self._field == ref:
            return self._buffer
        if self._state is not EditState.VIEWING:
            raise ConcurrentEditConflict(
                f"Cannot edit '{ref}' while '{self._field}' is {self._state.value}."
            )

        seed = cache.get_field(ref) if cache is not None else None
        if seed is None:
            seed = record.get_field(ref)
        self._state = EditState.EDITING
        self._field = ref
        self._buffer = seed
        logger.debug("Editing %s", ref)
        return seed

    def update_buffer(self, text: str) -> None:
        if self._state is EditState.COMMITTING:
            raise ConcurrentEditConflict(f"'{self._field}' is being committed.")
        if self._state is not EditState.EDITING:
            raise RuntimeError("No field is being edited.")
        self._buffer = text

    def cancel(self) -> None:
        if self._state is EditState.COMMITTING:
            raise ConcurrentEditConflict(f"'{self._field}' is being committed.")
        self._reset()

    def _reset(self) -> None:
        self._state = EditState.VIEWING
        self._field = None
        self._buffer = ""

    async def commit(
        self,
        record: AnalysisRecord,
        cache: TranslationCache | None,
    ) -> SyncResult:
        if self._state is EditState.COMMITTING:
            raise ConcurrentEditConflict(f"'{self._field}' is already being committed.")
        if self._state is not EditState.EDITING or self._field is None:
            raise RuntimeError("No field is being edited.")

        ref = self._field
        self._state = EditState.COMMITTING
        committed = False
        try:
            result = await self._apply(ref, self._buffer.strip(), record, cache)
            committed = True
        finally:
            if not committed:
                self._state = EditState.EDITING

        self._reset()
        logger.info("Committed edit of %s", ref)
        if self.on_record_update is not None:
            self.on_record_update(result.record)
        if self.on_cache_update is not None:
            self.on_cache_update(result.cache)
        return result

    async def edit(
        self,
        section: str,
        field: str,
        text: str,
        record: AnalysisRecord,
        cache: TranslationCache | None,
    ) -> SyncResult:
        self.begin_edit(section, field, record, cache)
        self.update_buffer(text)
        return await self.commit(record, cache)

    async def _apply(
        self,
        ref: FieldRef,
        text: str,
        record: AnalysisRecord,
        cache: TranslationCache | None,
    ) -> SyncResult:
        cache = cache or TranslationCache()
        is_cached_language = not is_blank(text) and self._provider.classify_language(text)
        translated = 0

        if ref == CUSTOM_PROMPT_REF:
            english = text
            if is_cached_language:
                english = await self._translate(ref, text, TranslationDirection.TO_SOURCE)
                translated = 1
            new_record = record.with_field(ref, text)
            new_cache = cache.with_field(ref, english)
        elif is_blank(text):
            new_record = record.with_field(ref, "")
            new_cache = cache.with_field(ref, "")
        elif is_cached_language:
            source = await self._translate(ref, text, TranslationDirection.TO_SOURCE)
            new_record = record.with_field(ref, source)
            new_cache = cache.with_field(ref, text)
            translated = 1
        else:
            cached = await self._translate(ref, text, TranslationDirection.TO_CACHE)
            new_record = record.with_field(ref, text)
            new_cache = cache.with_field(ref, cached)
            translated = 1

        if ref.section in PROMPT_SOURCE_SECTIONS and new_record.get_field(ref) != record.get_field(ref):
            # Stale until the next synchronization pass rebuilds it.
            new_cache = new_cache.with_field(POSITIVE_PROMPT_REF, None)

        return SyncResult(record=new_record, cache=new_cache, translated_fields=translated)

    async def _translate(self, ref: FieldRef, text: str, direction: TranslationDirection) -> str:
        slot = FieldSlot(ref=ref, text=text, direction=direction)
        results = await run_batch(self._provider, [slot], direction)
        return results[ref]
