from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from bisync_core.analysis.models import AnalysisRecord
from bisync_core.constants import (
    CORE_SECTIONS,
    SECTION_ORDER,
    SECTION_PROMPTS,
    VARIANT_SECTIONS,
)
from bisync_core.sync.fingerprint import section_fingerprint, sections_equal

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ChangeSet:
    """Ordered set of changed section identifiers.

    ``custom_prompt_changed`` is tracked beside the sections because the
    free-text prompt is translated in the opposite direction.
    """

    sections: tuple[str, ...] = ()
    custom_prompt_changed: bool = False

    def __post_init__(self) -> None:
        unknown = [name for name in self.sections if name not in SECTION_ORDER]
        if unknown:
            raise ValueError(f"Unknown section identifiers in change set: {unknown}")
        ordered = tuple(name for name in SECTION_ORDER if name in self.sections)
        object.__setattr__(self, "sections", ordered)

    def __iter__(self) -> Iterator[str]:
        return iter(self.sections)

    def __len__(self) -> int:
        return len(self.sections)

    def __contains__(self, section: object) -> bool:
        return section in self.sections

    @property
    def has_changes(self) -> bool:
        return bool(self.sections) or self.custom_prompt_changed

    @classmethod
    def everything(cls, record: AnalysisRecord) -> ChangeSet:
        return cls(
            sections=(*record.present_sections(), SECTION_PROMPTS),
            custom_prompt_changed=bool(record.user_custom_prompt),
        )


def detect_changed_sections(old: AnalysisRecord | None, new: AnalysisRecord) -> ChangeSet:
    if old is None:
        change_set = ChangeSet.everything(new)
        logger.info("First analysis: all sections need translation (%s)", ", ".join(change_set))
        return change_set

    changed: list[str] = []
    for name in CORE_SECTIONS:
        if not sections_equal(old.section(name), new.section(name)):
            logger.debug(
                "Section %s changed (%s -> %s)",
                name,
                section_fingerprint(old.section(name))[:12],
                section_fingerprint(new.section(name))[:12],
            )
            changed.append(name)

    for name in VARIANT_SECTIONS:
        if not old.has_section(name) and not new.has_section(name):
            continue
        if not sections_equal(old.section(name), new.section(name)):
            logger.debug("Variant section %s changed", name)
            changed.append(name)

    if old.negative_prompt != new.negative_prompt:
        changed.append(SECTION_PROMPTS)

    custom_changed = (old.user_custom_prompt or "") != (new.user_custom_prompt or "")
    change_set = ChangeSet(sections=tuple(changed), custom_prompt_changed=custom_changed)

    if change_set.has_changes:
        logger.info(
            "Detected %d changed section(s): %s%s",
            len(change_set),
            ", ".join(change_set) or "-",
            " (+custom prompt)" if custom_changed else "",
        )
    else:
        logger.info("No changes detected; translation skipped")
    return change_set
