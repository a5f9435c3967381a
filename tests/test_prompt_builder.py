from __future__ import annotations

from bisync_core.analysis import (
    AnalysisRecord,
    RecordKind,
    build_dynamic_prompt,
    build_negative_prompt,
    build_positive_prompt,
)


def _record() -> AnalysisRecord:
    return AnalysisRecord(
        kind=RecordKind.CHARACTER,
        sections={
            "style": {
                "art_style": "anime",
                "technique": "cel shading",
                "color_palette": "",
                "lighting": "soft rim light",
                "mood": "cheerful",
            },
            "character": {
                "gender": "female",
                "age_group": "teen",
                "hair": "twin tails",
                "eyes": "",
                "face": "",
                "outfit": "school uniform",
                "accessories": "",
                "body_proportions": "",
                "limb_proportions": "",
                "torso_shape": "",
                "hand_style": "",
            },
            "composition": {
                "pose": "waving",
                "angle": "eye level",
                "background": "",
                "depth_of_field": "shallow",
            },
        },
        negative_prompt="lowres, bad hands",
    )


def test_positive_prompt_joins_style_then_character() -> None:
    assert build_positive_prompt(_record()) == (
        "anime, cel shading, soft rim light, cheerful, "
        "female, teen, twin tails, school uniform"
    )


def test_positive_prompt_leaves_out_composition() -> None:
    assert "waving" not in build_positive_prompt(_record())


def test_negative_prompt() -> None:
    assert build_negative_prompt(_record()) == "lowres, bad hands"


def test_dynamic_prompt_appends_request_and_scene() -> None:
    record = _record()

    prompt = build_dynamic_prompt(build_positive_prompt(record), "  holding an umbrella ", record=record)

    assert prompt.endswith("holding an umbrella, waving, eye level")
    assert build_dynamic_prompt("base", "") == "base"
