from __future__ import annotations

import pytest

from bisync_core.analysis.models import AnalysisRecord
from bisync_core.analysis.schema import SECTION_FIELDS, RecordKind
from bisync_core.constants import CORE_SECTIONS
from bisync_core.errors import SchemaMismatch
from bisync_core.sync.change_detector import ChangeSet, detect_changed_sections
from bisync_core.sync.fingerprint import canonical_section, section_fingerprint, sections_equal
from bisync_core.sync.language import contains_hangul, is_blank


def _section(name: str) -> dict[str, str]:
    return {field: f"{field} value" for field in SECTION_FIELDS[name]}


def _record(
    *,
    kind: RecordKind = RecordKind.STYLE,
    negative_prompt: str = "blurry, low quality",
    user_custom_prompt: str | None = None,
    **sections: dict[str, str],
) -> AnalysisRecord:
    payload = {name: _section(name) for name in CORE_SECTIONS}
    payload.update(sections)
    return AnalysisRecord(
        kind=kind,
        sections=payload,
        negative_prompt=negative_prompt,
        user_custom_prompt=user_custom_prompt,
    )


def test_fingerprint_ignores_key_order() -> None:
    forward = {"a": "1", "b": "2"}
    backward = {"b": "2", "a": "1"}

    assert canonical_section(forward) == canonical_section(backward)
    assert section_fingerprint(forward) == section_fingerprint(backward)
    assert sections_equal(forward, backward)
    assert not sections_equal(forward, {"a": "1", "b": "3"})
    assert canonical_section(None) == ""
    assert not sections_equal(None, forward)


def test_fingerprint_keeps_hangul_unescaped() -> None:
    assert "슬픈" in canonical_section({"mood": "슬픈"})


def test_change_set_is_kept_in_canonical_order() -> None:
    change_set = ChangeSet(sections=("prompts", "composition", "style"))

    assert list(change_set) == ["style", "composition", "prompts"]
    assert "style" in change_set
    assert "character" not in change_set
    assert len(change_set) == 3


def test_change_set_rejects_unknown_sections() -> None:
    with pytest.raises(ValueError):
        ChangeSet(sections=("lighting",))


def test_first_analysis_marks_every_section() -> None:
    record = _record(user_custom_prompt="add rain")

    change_set = detect_changed_sections(None, record)

    assert list(change_set) == ["style", "character", "composition", "prompts"]
    assert change_set.custom_prompt_changed is True


def test_single_field_change_marks_only_its_section() -> None:
    old = _record(style={**_section("style"), "mood": "happy"})
    new = _record(style={**_section("style"), "mood": "sad"})

    change_set = detect_changed_sections(old, new)

    assert list(change_set) == ["style"]
    assert change_set.custom_prompt_changed is False


def test_identical_records_have_no_changes() -> None:
    change_set = detect_changed_sections(_record(), _record())

    assert list(change_set) == []
    assert not change_set.has_changes


def test_negative_prompt_change_marks_prompts() -> None:
    change_set = detect_changed_sections(_record(), _record(negative_prompt="extra fingers"))

    assert list(change_set) == ["prompts"]


def test_custom_prompt_change_only_sets_flag() -> None:
    change_set = detect_changed_sections(_record(), _record(user_custom_prompt="비 오는 밤"))

    assert list(change_set) == []
    assert change_set.custom_prompt_changed is True
    assert change_set.has_changes


def test_variant_section_added_and_removed() -> None:
    plain = _record()
    with_ui = _record(kind=RecordKind.UI, ui_specific=_section("ui_specific"))

    assert list(detect_changed_sections(plain, with_ui)) == ["ui_specific"]
    assert list(detect_changed_sections(with_ui, plain)) == ["ui_specific"]
    assert list(detect_changed_sections(with_ui, with_ui)) == []


def test_record_rejects_section_with_wrong_fields() -> None:
    broken = _section("style")
    del broken["mood"]

    with pytest.raises(SchemaMismatch):
        _record(style=broken)


def test_record_rejects_variant_not_allowed_by_kind() -> None:
    with pytest.raises(SchemaMismatch):
        _record(kind=RecordKind.STYLE, logo_specific=_section("logo_specific"))


def test_record_kind_is_inferred_from_variant_section() -> None:
    payload = {name: _section(name) for name in CORE_SECTIONS}
    payload["logo_specific"] = _section("logo_specific")
    payload["negative_prompt"] = "watermark"

    record = AnalysisRecord.from_dict(payload)

    assert record.kind is RecordKind.LOGO
    assert record.present_sections() == ("style", "character", "composition", "logo_specific")


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("soft pastel lighting", False),
        ("부드러운 파스텔 조명", True),
        ("pastel 조명", True),
        ("ㅋㅋ", True),
        ("", False),
        ("カラフル", False),
    ],
)
def test_contains_hangul(text: str, expected: bool) -> None:
    assert contains_hangul(text) is expected


def test_is_blank() -> None:
    assert is_blank("")
    assert is_blank("   \n")
    assert is_blank(None)
    assert not is_blank(" x ")
