from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from bisync_core.analysis.models import AnalysisRecord, FieldRef, TranslationCache
from bisync_core.analysis.schema import section_fields
from bisync_core.constants import (
    FIELD_CUSTOM_PROMPT,
    FIELD_NEGATIVE_PROMPT,
    FIELD_POSITIVE_PROMPT,
    PROMPT_SOURCE_SECTIONS,
    SECTION_PROMPTS,
)
from bisync_core.llm.provider_base import TranslationDirection
from bisync_core.sync.change_detector import ChangeSet
from bisync_core.sync.language import is_blank

NEGATIVE_PROMPT_REF = FieldRef(SECTION_PROMPTS, FIELD_NEGATIVE_PROMPT)
CUSTOM_PROMPT_REF = FieldRef(SECTION_PROMPTS, FIELD_CUSTOM_PROMPT)
POSITIVE_PROMPT_REF = FieldRef(SECTION_PROMPTS, FIELD_POSITIVE_PROMPT)

LanguageClassifier = Callable[[str], bool]


@dataclass(slots=True, frozen=True)
class FieldSlot:
    """One planned field. ``direction`` is None when no call is needed."""

    ref: FieldRef
    text: str
    direction: TranslationDirection | None


@dataclass(slots=True, frozen=True)
class TranslationPlan:
    change_set: ChangeSet
    rebuilt_sections: tuple[str, ...] = ()
    backfilled_sections: tuple[str, ...] = ()
    slots: tuple[FieldSlot, ...] = ()
    refresh_negative_prompt: bool = False
    refresh_custom_prompt: bool = False
    refresh_positive_prompt: bool = False

    def queued(self, direction: TranslationDirection) -> tuple[FieldSlot, ...]:
        return tuple(slot for slot in self.slots if slot.direction is direction)

    @property
    def to_source(self) -> tuple[FieldSlot, ...]:
        return self.queued(TranslationDirection.TO_SOURCE)

    @property
    def to_cache(self) -> tuple[FieldSlot, ...]:
        return self.queued(TranslationDirection.TO_CACHE)

    @property
    def planned_sections(self) -> tuple[str, ...]:
        return (*self.rebuilt_sections, *self.backfilled_sections)

    @property
    def is_empty(self) -> bool:
        return not (
            self.slots
            or self.refresh_negative_prompt
            or self.refresh_custom_prompt
            or self.refresh_positive_prompt
        )


@dataclass(slots=True, frozen=True)
class MergeInstructions:
    plan: TranslationPlan
    to_source: dict[FieldRef, str] = field(default_factory=dict)
    to_cache: dict[FieldRef, str] = field(default_factory=dict)
    positive_prompt: str | None = None
    cached_positive_prompt: str | None = None


@dataclass(slots=True, frozen=True)
class SyncResult:
    record: AnalysisRecord
    cache: TranslationCache
    translated_fields: int = 0


def _section_slot(ref: FieldRef, text: str, classify: LanguageClassifier) -> FieldSlot:
    if is_blank(text):
        return FieldSlot(ref=ref, text=text, direction=None)
    if classify(text):
        return FieldSlot(ref=ref, text=text, direction=TranslationDirection.TO_SOURCE)
    return FieldSlot(ref=ref, text=text, direction=TranslationDirection.TO_CACHE)


def _custom_prompt_slot(text: str, classify: LanguageClassifier) -> FieldSlot:
    if not is_blank(text) and classify(text):
        return FieldSlot(ref=CUSTOM_PROMPT_REF, text=text, direction=TranslationDirection.TO_SOURCE)
    return FieldSlot(ref=CUSTOM_PROMPT_REF, text=text, direction=None)


def build_plan(
    change_set: ChangeSet,
    record: AnalysisRecord,
    cache: TranslationCache | None,
    classify: LanguageClassifier,
) -> TranslationPlan:
    """Select the fields that need translation in this pass.

    Changed sections are re-planned field by field in schema order. Fields
    the cache does not hold yet are planned as well, whatever the change set
    says.
    """

    cache = cache or TranslationCache()
    rebuilt = tuple(name for name in change_set if name != SECTION_PROMPTS and record.has_section(name))

    slots: list[FieldSlot] = []
    backfilled: list[str] = []
    for name in record.present_sections():
        values = record.sections[name]
        if name in rebuilt:
            fields = section_fields(name)
        else:
            cached = cache.section(name) or {}
            fields = tuple(field_name for field_name in section_fields(name) if field_name not in cached)
            if not fields:
                continue
            backfilled.append(name)
        for field_name in fields:
            slots.append(_section_slot(FieldRef(name, field_name), values[field_name], classify))

    refresh_negative = SECTION_PROMPTS in change_set or cache.negative_prompt is None
    if refresh_negative:
        slots.append(_section_slot(NEGATIVE_PROMPT_REF, record.negative_prompt, classify))

    refresh_custom = change_set.custom_prompt_changed or (
        record.user_custom_prompt is not None and cache.custom_prompt_english is None
    )
    if refresh_custom and record.user_custom_prompt is not None:
        slots.append(_custom_prompt_slot(record.user_custom_prompt, classify))

    # Backfilled fields only change the record when they come back translated.
    refresh_positive = (
        cache.positive_prompt is None
        or any(name in rebuilt for name in PROMPT_SOURCE_SECTIONS)
        or any(
            slot.ref.section in PROMPT_SOURCE_SECTIONS
            and slot.direction is TranslationDirection.TO_SOURCE
            for slot in slots
        )
    )

    return TranslationPlan(
        change_set=change_set,
        rebuilt_sections=rebuilt,
        backfilled_sections=tuple(backfilled),
        slots=tuple(slots),
        refresh_negative_prompt=refresh_negative,
        refresh_custom_prompt=refresh_custom,
        refresh_positive_prompt=refresh_positive,
    )
