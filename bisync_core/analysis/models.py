from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from bisync_core.analysis.schema import (
    CACHE_SECTION_KEYS,
    RecordKind,
    coerce_kind,
    infer_kind,
    section_fields,
    validate_partial_section,
    validate_section,
)
from bisync_core.constants import (
    CORE_SECTIONS,
    FIELD_CUSTOM_PROMPT,
    FIELD_NEGATIVE_PROMPT,
    FIELD_POSITIVE_PROMPT,
    SECTION_ORDER,
    SECTION_PROMPTS,
    VARIANT_SECTIONS,
)
from bisync_core.errors import SchemaMismatch

PROMPT_FIELDS = (FIELD_NEGATIVE_PROMPT, FIELD_CUSTOM_PROMPT, FIELD_POSITIVE_PROMPT)


@dataclass(slots=True, frozen=True)
class FieldRef:
    """Address of one translatable value.

    Scalars live under the ``prompts`` pseudo-section.
    """

    section: str
    field: str

    @property
    def is_scalar(self) -> bool:
        return self.section == SECTION_PROMPTS

    def __str__(self) -> str:
        return f"{self.section}.{self.field}"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _copy_sections(sections: Mapping[str, Mapping[str, str]]) -> dict[str, dict[str, str]]:
    return {name: dict(values) for name, values in sections.items()}


@dataclass(slots=True, frozen=True)
class AnalysisRecord:
    """Source-language (English) analysis of a reference image."""

    kind: RecordKind
    sections: dict[str, dict[str, str]]
    negative_prompt: str = ""
    user_custom_prompt: str | None = None

    def __post_init__(self) -> None:
        for required in CORE_SECTIONS:
            if required not in self.sections:
                raise SchemaMismatch(f"Analysis record is missing section '{required}'.")
        allowed = self.kind.allowed_sections
        for name, values in self.sections.items():
            if name not in allowed:
                raise SchemaMismatch(
                    f"Section '{name}' is not allowed for record kind {self.kind.value}."
                )
            validate_section(name, values)

    def has_section(self, name: str) -> bool:
        return name in self.sections

    def section(self, name: str) -> dict[str, str] | None:
        return self.sections.get(name)

    def present_sections(self) -> tuple[str, ...]:
        return tuple(name for name in SECTION_ORDER if name in self.sections)

    def get_field(self, ref: FieldRef) -> str:
        if ref.is_scalar:
            if ref.field == FIELD_NEGATIVE_PROMPT:
                return self.negative_prompt
            if ref.field == FIELD_CUSTOM_PROMPT:
                return self.user_custom_prompt or ""
            raise SchemaMismatch(f"'{ref}' is not a stored record field.")
        values = self.sections.get(ref.section)
        if values is None or ref.field not in values:
            raise SchemaMismatch(f"Analysis record has no field '{ref}'.")
        return values[ref.field]

    def with_field(self, ref: FieldRef, value: str) -> AnalysisRecord:
        if ref.is_scalar:
            if ref.field == FIELD_NEGATIVE_PROMPT:
                return replace(self, negative_prompt=value)
            if ref.field == FIELD_CUSTOM_PROMPT:
                return replace(self, user_custom_prompt=value)
            raise SchemaMismatch(f"'{ref}' is not a stored record field.")
        self.get_field(ref)
        sections = _copy_sections(self.sections)
        sections[ref.section][ref.field] = value
        return replace(self, sections=sections)

    def with_sections(self, updates: Mapping[str, Mapping[str, str]]) -> AnalysisRecord:
        if not updates:
            return self
        sections = _copy_sections(self.sections)
        for name, values in updates.items():
            sections[name] = dict(values)
        return replace(self, sections=sections)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {name: dict(values) for name, values in self.sections.items()}
        payload[FIELD_NEGATIVE_PROMPT] = self.negative_prompt
        if self.user_custom_prompt is not None:
            payload[FIELD_CUSTOM_PROMPT] = self.user_custom_prompt
        return payload

    @classmethod
    def from_dict(
        cls,
        payload: Mapping[str, Any],
        *,
        kind: RecordKind | str | None = None,
    ) -> AnalysisRecord:
        resolved_kind = coerce_kind(kind) if kind else infer_kind(payload)
        sections: dict[str, dict[str, str]] = {}
        for name in (*CORE_SECTIONS, *VARIANT_SECTIONS):
            raw = payload.get(name)
            if raw is None:
                continue
            if not isinstance(raw, Mapping):
                raise SchemaMismatch(f"Section '{name}' must be an object.")
            sections[name] = {str(key): _text(value) for key, value in raw.items()}

        custom = payload.get(FIELD_CUSTOM_PROMPT)
        return cls(
            kind=resolved_kind,
            sections=sections,
            negative_prompt=_text(payload.get(FIELD_NEGATIVE_PROMPT)),
            user_custom_prompt=None if custom is None else _text(custom),
        )


@dataclass(slots=True, frozen=True)
class TranslationCache:
    """Cached-language (Korean) shadow of an analysis record.

    ``custom_prompt_english`` is named for its payload: it holds the English
    form of the user's free text, whatever language the user typed.
    """

    sections: dict[str, dict[str, str]] = field(default_factory=dict)
    positive_prompt: str | None = None
    negative_prompt: str | None = None
    custom_prompt_english: str | None = None

    def __post_init__(self) -> None:
        for name, values in self.sections.items():
            validate_partial_section(name, values)

    def section(self, name: str) -> dict[str, str] | None:
        return self.sections.get(name)

    def get_field(self, ref: FieldRef) -> str | None:
        if ref.is_scalar:
            if ref.field == FIELD_NEGATIVE_PROMPT:
                return self.negative_prompt
            if ref.field == FIELD_CUSTOM_PROMPT:
                return self.custom_prompt_english
            if ref.field == FIELD_POSITIVE_PROMPT:
                return self.positive_prompt
            raise SchemaMismatch(f"'{ref}' is not a cached field.")
        values = self.sections.get(ref.section)
        if values is None:
            return None
        return values.get(ref.field)

    def with_field(self, ref: FieldRef, value: str | None) -> TranslationCache:
        if ref.is_scalar:
            if ref.field == FIELD_NEGATIVE_PROMPT:
                return replace(self, negative_prompt=value)
            if ref.field == FIELD_CUSTOM_PROMPT:
                return replace(self, custom_prompt_english=value)
            if ref.field == FIELD_POSITIVE_PROMPT:
                return replace(self, positive_prompt=value)
            raise SchemaMismatch(f"'{ref}' is not a cached field.")
        if ref.field not in section_fields(ref.section):
            raise SchemaMismatch(f"Cache has no field '{ref}'.")
        sections = _copy_sections(self.sections)
        values = sections.setdefault(ref.section, {})
        if value is None:
            values.pop(ref.field, None)
        else:
            values[ref.field] = value
        return replace(self, sections=sections)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for name, values in self.sections.items():
            payload[CACHE_SECTION_KEYS[name]] = dict(values)
        if self.positive_prompt is not None:
            payload["positivePrompt"] = self.positive_prompt
        if self.negative_prompt is not None:
            payload["negativePrompt"] = self.negative_prompt
        if self.custom_prompt_english is not None:
            payload["customPromptEnglish"] = self.custom_prompt_english
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> TranslationCache:
        if not payload:
            return cls()
        sections: dict[str, dict[str, str]] = {}
        for name, key in CACHE_SECTION_KEYS.items():
            raw = payload.get(key)
            if raw is None:
                continue
            if not isinstance(raw, Mapping):
                raise SchemaMismatch(f"Cached section '{key}' must be an object.")
            sections[name] = {str(k): _text(v) for k, v in raw.items() if v is not None}

        def _optional(key: str) -> str | None:
            value = payload.get(key)
            return None if value is None else _text(value)

        return cls(
            sections=sections,
            positive_prompt=_optional("positivePrompt"),
            negative_prompt=_optional("negativePrompt"),
            custom_prompt_english=_optional("customPromptEnglish"),
        )


def validate_cache(cache: TranslationCache, record: AnalysisRecord) -> None:
    for name in cache.sections:
        if not record.has_section(name):
            raise SchemaMismatch(
                f"Cache holds section '{name}' that the analysis record does not have."
            )
