from __future__ import annotations

import logging

from bisync_core.analysis.models import AnalysisRecord, TranslationCache, validate_cache
from bisync_core.analysis.prompt_builder import build_positive_prompt
from bisync_core.llm.provider_base import TranslationProvider
from bisync_core.sync.change_detector import ChangeSet, detect_changed_sections
from bisync_core.sync.dispatcher import PromptBuilder, dispatch
from bisync_core.sync.field_editor import FieldEditCoordinator
from bisync_core.sync.merge import merge
from bisync_core.sync.plan import SyncResult

logger = logging.getLogger(__name__)


class SyncEngine:
    """Keeps one analysis record and its translation cache in step.

    The engine never mutates the record or cache it is given; every pass
    returns new values for the owner to store. One engine serves one record,
    so its edit coordinator enforces single-field editing for that record.
    """

    def __init__(
        self,
        provider: TranslationProvider,
        *,
        prompt_builder: PromptBuilder = build_positive_prompt,
        coordinator: FieldEditCoordinator | None = None,
    ) -> None:
        self.provider = provider
        self.prompt_builder = prompt_builder
        self.coordinator = coordinator or FieldEditCoordinator(provider)

    def detect_changed_sections(
        self,
        old: AnalysisRecord | None,
        new: AnalysisRecord,
    ) -> ChangeSet:
        return detect_changed_sections(old, new)

    async def synchronize(
        self,
        new: AnalysisRecord,
        old_cache: TranslationCache | None,
        change_set: ChangeSet,
    ) -> SyncResult:
        instructions = await dispatch(
            change_set,
            new,
            old_cache,
            self.provider,
            prompt_builder=self.prompt_builder,
        )
        record, cache = merge(new, old_cache, instructions)
        validate_cache(cache, record)

        translated = len(instructions.to_source) + len(instructions.to_cache)
        logger.info(
            "Synchronized %d section(s); %d field(s) translated",
            len(instructions.plan.planned_sections),
            translated,
        )
        return SyncResult(record=record, cache=cache, translated_fields=translated)

    async def edit_field(
        self,
        section: str,
        field: str,
        edited_text: str,
        record: AnalysisRecord,
        cache: TranslationCache | None,
    ) -> SyncResult:
        return await self.coordinator.edit(section, field, edited_text, record, cache)
