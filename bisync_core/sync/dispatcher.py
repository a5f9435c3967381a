from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from bisync_core.analysis.models import AnalysisRecord, FieldRef, TranslationCache
from bisync_core.analysis.prompt_builder import build_positive_prompt
from bisync_core.errors import TranslationCallFailure
from bisync_core.llm.provider_base import TranslationDirection, TranslationProvider
from bisync_core.sync.change_detector import ChangeSet
from bisync_core.sync.language import is_blank
from bisync_core.sync.merge import apply_source_translations
from bisync_core.sync.plan import (
    POSITIVE_PROMPT_REF,
    FieldSlot,
    MergeInstructions,
    build_plan,
)

logger = logging.getLogger(__name__)

PromptBuilder = Callable[[AnalysisRecord], str]


async def run_batch(
    provider: TranslationProvider,
    slots: Sequence[FieldSlot],
    direction: TranslationDirection,
) -> dict[FieldRef, str]:
    """Issue one translate call for all slots and map results back by position."""

    if not slots:
        return {}

    texts = [slot.text for slot in slots]
    logger.info("Translating %d field(s) %s", len(texts), direction.value)
    logger.debug("Batch fields: %s", ", ".join(str(slot.ref) for slot in slots))

    try:
        results = await provider.translate_batch(texts, direction)
    except TranslationCallFailure:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error("Translate call failed (%s): %s", direction.value, exc)
        raise TranslationCallFailure(f"Translate call failed ({direction.value}): {exc}") from exc

    results = list(results) if results is not None else []
    if len(results) != len(texts):
        logger.error(
            "Translate call returned %d result(s) for %d input(s)", len(results), len(texts)
        )
        raise TranslationCallFailure(
            f"Translate call returned {len(results)} result(s) for {len(texts)} input(s)."
        )
    if not all(isinstance(item, str) for item in results):
        raise TranslationCallFailure("Translate call returned non-text results.")

    return {slot.ref: result for slot, result in zip(slots, results)}


async def dispatch(
    change_set: ChangeSet,
    record: AnalysisRecord,
    cache: TranslationCache | None,
    provider: TranslationProvider,
    *,
    prompt_builder: PromptBuilder = build_positive_prompt,
) -> MergeInstructions:
    """Run at most one call per direction for a synchronization pass.

    Cached-language input is translated first so the positive prompt is built
    from the all-English record; the prompt then rides along in the
    source->cached call.
    """

    plan = build_plan(change_set, record, cache, provider.classify_language)
    if plan.is_empty:
        logger.info("Nothing to translate")
        return MergeInstructions(plan=plan)

    to_source = await run_batch(provider, plan.to_source, TranslationDirection.TO_SOURCE)

    to_cache_slots = list(plan.to_cache)
    positive_prompt: str | None = None
    if plan.refresh_positive_prompt:
        patched = apply_source_translations(record, plan, to_source)
        positive_prompt = prompt_builder(patched)
        if not is_blank(positive_prompt):
            to_cache_slots.append(
                FieldSlot(
                    ref=POSITIVE_PROMPT_REF,
                    text=positive_prompt,
                    direction=TranslationDirection.TO_CACHE,
                )
            )

    to_cache = await run_batch(provider, to_cache_slots, TranslationDirection.TO_CACHE)

    cached_positive_prompt: str | None = None
    if plan.refresh_positive_prompt:
        cached_positive_prompt = to_cache.pop(POSITIVE_PROMPT_REF, positive_prompt)

    return MergeInstructions(
        plan=plan,
        to_source=to_source,
        to_cache=to_cache,
        positive_prompt=positive_prompt,
        cached_positive_prompt=cached_positive_prompt,
    )
