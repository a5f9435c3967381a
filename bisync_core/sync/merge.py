from __future__ import annotations

import logging
from collections.abc import Mapping

from bisync_core.analysis.models import AnalysisRecord, FieldRef, TranslationCache
from bisync_core.analysis.schema import section_fields
from bisync_core.constants import FIELD_CUSTOM_PROMPT, FIELD_NEGATIVE_PROMPT
from bisync_core.llm.provider_base import TranslationDirection
from bisync_core.sync.plan import (
    CUSTOM_PROMPT_REF,
    NEGATIVE_PROMPT_REF,
    FieldSlot,
    MergeInstructions,
    TranslationPlan,
)

logger = logging.getLogger(__name__)


def apply_source_translations(
    record: AnalysisRecord,
    plan: TranslationPlan,
    to_source: Mapping[FieldRef, str],
) -> AnalysisRecord:
    """Write cached->source results back into the record.

    The user's custom prompt is never rewritten; its English form lives in
    the cache only.
    """

    updates: dict[str, dict[str, str]] = {}
    negative_prompt = record.negative_prompt
    for slot in plan.to_source:
        ref = slot.ref
        translated = to_source[ref]
        if ref.is_scalar:
            if ref.field == FIELD_NEGATIVE_PROMPT:
                negative_prompt = translated
            continue
        if ref.section not in updates:
            updates[ref.section] = dict(record.sections[ref.section])
        updates[ref.section][ref.field] = translated

    patched = record.with_sections(updates)
    if negative_prompt != record.negative_prompt:
        patched = patched.with_field(NEGATIVE_PROMPT_REF, negative_prompt)
    return patched


def _cached_value(slot: FieldSlot, instructions: MergeInstructions) -> str:
    if slot.ref == CUSTOM_PROMPT_REF:
        if slot.direction is TranslationDirection.TO_SOURCE:
            return instructions.to_source[slot.ref]
        return slot.text
    if slot.direction is TranslationDirection.TO_CACHE:
        return instructions.to_cache[slot.ref]
    # Korean input stays in the cache as typed; blanks mirror as-is.
    return slot.text


def _in_schema_order(section: str, values: Mapping[str, str]) -> dict[str, str]:
    return {name: values[name] for name in section_fields(section) if name in values}


def merge(
    record: AnalysisRecord,
    cache: TranslationCache | None,
    instructions: MergeInstructions,
) -> tuple[AnalysisRecord, TranslationCache]:
    plan = instructions.plan
    old = cache or TranslationCache()
    updated_record = apply_source_translations(record, plan, instructions.to_source)

    sections: dict[str, dict[str, str]] = {}
    for name in record.present_sections():
        if name in plan.rebuilt_sections:
            sections[name] = {}
        elif name in plan.backfilled_sections:
            sections[name] = dict(old.sections.get(name, {}))
        elif name in old.sections:
            sections[name] = old.sections[name]

    dropped = [name for name in old.sections if not record.has_section(name)]
    if dropped:
        logger.info("Dropping cached section(s) no longer in the record: %s", ", ".join(dropped))

    negative_prompt = old.negative_prompt
    custom_prompt_english = old.custom_prompt_english
    if plan.refresh_custom_prompt and record.user_custom_prompt is None:
        custom_prompt_english = None

    for slot in plan.slots:
        value = _cached_value(slot, instructions)
        if not slot.ref.is_scalar:
            sections[slot.ref.section][slot.ref.field] = value
        elif slot.ref.field == FIELD_NEGATIVE_PROMPT:
            negative_prompt = value
        elif slot.ref.field == FIELD_CUSTOM_PROMPT:
            custom_prompt_english = value

    for name in plan.planned_sections:
        sections[name] = _in_schema_order(name, sections[name])

    positive_prompt = old.positive_prompt
    if plan.refresh_positive_prompt:
        positive_prompt = instructions.cached_positive_prompt

    updated_cache = TranslationCache(
        sections=sections,
        positive_prompt=positive_prompt,
        negative_prompt=negative_prompt,
        custom_prompt_english=custom_prompt_english,
    )
    return updated_record, updated_cache
