from __future__ import annotations

import re
from collections.abc import Sequence

from bisync_core.llm.provider_base import TranslationDirection

_NUMBERED_LINE_PATTERN = re.compile(r"^\s*\[(\d+)\]\s?(.*)$")

_LANGUAGE_NAMES = {
    "en": "English",
    "ko": "Korean",
}


def language_name(locale: str) -> str:
    return _LANGUAGE_NAMES.get(locale.lower(), locale)


def _encode_line(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _decode_line(text: str) -> str:
    return re.sub(r"\\(\\|n)", lambda match: "\n" if match.group(1) == "n" else "\\", text)


def build_batch_translation_prompt(
    *,
    texts: Sequence[str],
    direction: TranslationDirection,
    source_locale: str,
    cache_locale: str,
) -> str:
    if direction is TranslationDirection.TO_CACHE:
        from_name, to_name = language_name(source_locale), language_name(cache_locale)
    else:
        from_name, to_name = language_name(cache_locale), language_name(source_locale)

    numbered = "\n".join(f"[{index}] {_encode_line(text)}" for index, text in enumerate(texts, start=1))
    return (
        f"Translate each numbered {from_name} line into {to_name}.\n"
        "These are attributes of an image-generation prompt; keep common art terms "
        "in English and keep comma-separated lists comma-separated.\n"
        "Keep the [number] prefix of every line and escaped \\n sequences unchanged.\n"
        "Output only the translated lines, one per number, nothing else.\n"
        f"{numbered}"
    )


def parse_numbered_lines(output: str, *, expected_count: int) -> list[str]:
    """Map a numbered model response back onto request positions.

    Raises ValueError when a number is missing, duplicated or out of range.
    """

    found: dict[int, str] = {}
    for line in output.splitlines():
        match = _NUMBERED_LINE_PATTERN.match(line)
        if match is None:
            continue
        number = int(match.group(1))
        if number < 1 or number > expected_count:
            raise ValueError(f"Response line number {number} is out of range 1..{expected_count}.")
        if number in found:
            raise ValueError(f"Response line number {number} appears more than once.")
        found[number] = _decode_line(match.group(2).strip())

    missing = [number for number in range(1, expected_count + 1) if number not in found]
    if missing:
        raise ValueError(f"Response is missing line number(s): {missing}")
    return [found[number] for number in range(1, expected_count + 1)]
