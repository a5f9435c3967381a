from __future__ import annotations

from bisync_core.analysis.models import AnalysisRecord
from bisync_core.analysis.schema import SECTION_FIELDS
from bisync_core.constants import SECTION_CHARACTER, SECTION_STYLE

# Composition is not part of the unified prompt; build_dynamic_prompt adds it
# per generation request.
_POSITIVE_PROMPT_SECTIONS = (SECTION_STYLE, SECTION_CHARACTER)


def _section_phrase(record: AnalysisRecord, section: str) -> str:
    values = record.section(section)
    if not values:
        return ""
    parts = [values[name] for name in SECTION_FIELDS[section] if values.get(name)]
    return ", ".join(parts)


def build_positive_prompt(record: AnalysisRecord) -> str:
    phrases = [_section_phrase(record, section) for section in _POSITIVE_PROMPT_SECTIONS]
    return ", ".join(phrase for phrase in phrases if phrase)


def build_negative_prompt(record: AnalysisRecord) -> str:
    return record.negative_prompt or ""


def build_dynamic_prompt(
    base_prompt: str,
    user_input: str,
    *,
    record: AnalysisRecord | None = None,
) -> str:
    parts = [base_prompt]
    if user_input.strip():
        parts.append(user_input.strip())

    composition = record.section("composition") if record is not None else None
    if composition:
        scene = [composition[name] for name in ("pose", "angle", "background") if composition.get(name)]
        if scene:
            parts.append(", ".join(scene))

    return ", ".join(part for part in parts if part)
