"""Analysis record and translation cache models."""

from bisync_core.analysis.models import (
    AnalysisRecord,
    FieldRef,
    TranslationCache,
    validate_cache,
)
from bisync_core.analysis.prompt_builder import (
    build_dynamic_prompt,
    build_negative_prompt,
    build_positive_prompt,
)
from bisync_core.analysis.schema import (
    CACHE_SECTION_KEYS,
    SECTION_FIELDS,
    RecordKind,
    coerce_kind,
    section_fields,
)

__all__ = [
    "AnalysisRecord",
    "CACHE_SECTION_KEYS",
    "FieldRef",
    "RecordKind",
    "SECTION_FIELDS",
    "TranslationCache",
    "build_dynamic_prompt",
    "build_negative_prompt",
    "build_positive_prompt",
    "coerce_kind",
    "section_fields",
    "validate_cache",
]
