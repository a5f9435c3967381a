from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

from bisync_core.constants import (
    CORE_SECTIONS,
    SECTION_CHARACTER,
    SECTION_COMPOSITION,
    SECTION_LOGO,
    SECTION_PIXELART,
    SECTION_STYLE,
    SECTION_UI,
)
from bisync_core.errors import SchemaMismatch

SECTION_FIELDS: dict[str, tuple[str, ...]] = {
    SECTION_STYLE: (
        "art_style",
        "technique",
        "color_palette",
        "lighting",
        "mood",
    ),
    SECTION_CHARACTER: (
        "gender",
        "age_group",
        "hair",
        "eyes",
        "face",
        "outfit",
        "accessories",
        "body_proportions",
        "limb_proportions",
        "torso_shape",
        "hand_style",
    ),
    SECTION_COMPOSITION: (
        "pose",
        "angle",
        "background",
        "depth_of_field",
    ),
    SECTION_UI: (
        "platform_type",
        "visual_style",
        "key_elements",
        "color_theme",
    ),
    SECTION_LOGO: (
        "typography_style",
        "text_warping",
        "text_weight",
        "edge_treatment",
        "material_type",
        "rendering_style",
        "surface_quality",
        "outline_style",
        "drop_shadow",
        "inner_effects",
        "decorative_elements",
        "color_vibrancy",
        "color_count",
        "gradient_usage",
        "genre_hint",
    ),
    SECTION_PIXELART: (
        "resolution_estimate",
        "palette_size",
        "outline_treatment",
        "dithering",
        "shading_style",
    ),
}

# Cache payload keys, as stored in session files.
CACHE_SECTION_KEYS: dict[str, str] = {
    SECTION_STYLE: "style",
    SECTION_CHARACTER: "character",
    SECTION_COMPOSITION: "composition",
    SECTION_UI: "uiAnalysis",
    SECTION_LOGO: "logoAnalysis",
    SECTION_PIXELART: "pixelartAnalysis",
}


class RecordKind(str, Enum):
    STYLE = "STYLE"
    CHARACTER = "CHARACTER"
    BACKGROUND = "BACKGROUND"
    UI = "UI"
    LOGO = "LOGO"
    PIXELART_CHARACTER = "PIXELART_CHARACTER"
    PIXELART_BACKGROUND = "PIXELART_BACKGROUND"
    PIXELART_ICON = "PIXELART_ICON"

    @property
    def variant_section(self) -> str | None:
        if self is RecordKind.UI:
            return SECTION_UI
        if self is RecordKind.LOGO:
            return SECTION_LOGO
        if self.value.startswith("PIXELART_"):
            return SECTION_PIXELART
        return None

    @property
    def allowed_sections(self) -> tuple[str, ...]:
        variant = self.variant_section
        if variant is None:
            return CORE_SECTIONS
        return (*CORE_SECTIONS, variant)


def coerce_kind(value: RecordKind | str | None) -> RecordKind:
    if isinstance(value, RecordKind):
        return value
    normalized = str(value or "").strip().upper()
    if not normalized:
        return RecordKind.STYLE
    try:
        return RecordKind(normalized)
    except ValueError as exc:
        raise ValueError(f"Unsupported record kind: {value}") from exc


def infer_kind(payload: Mapping[str, object]) -> RecordKind:
    if payload.get(SECTION_UI):
        return RecordKind.UI
    if payload.get(SECTION_LOGO):
        return RecordKind.LOGO
    if payload.get(SECTION_PIXELART):
        return RecordKind.PIXELART_CHARACTER
    return RecordKind.STYLE


def section_fields(section: str) -> tuple[str, ...]:
    try:
        return SECTION_FIELDS[section]
    except KeyError as exc:
        raise SchemaMismatch(f"Unknown analysis section '{section}'.") from exc


def validate_section(section: str, values: Mapping[str, str]) -> None:
    expected = set(section_fields(section))
    found = set(values)
    if found == expected:
        return
    missing = sorted(expected - found)
    extra = sorted(found - expected)
    raise SchemaMismatch(
        f"Section '{section}' does not match its schema "
        f"(missing={missing}, unexpected={extra})."
    )


def validate_partial_section(section: str, values: Mapping[str, str]) -> None:
    unexpected = sorted(set(values) - set(section_fields(section)))
    if unexpected:
        raise SchemaMismatch(
            f"Cached section '{section}' has fields outside its schema: {unexpected}."
        )
