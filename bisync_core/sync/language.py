from __future__ import annotations

import re

# Hangul syllables plus compatibility jamo (consonants and vowels typed alone).
_HANGUL_PATTERN = re.compile(r"[ㄱ-ㅎㅏ-ㅣ가-힣]")


def contains_hangul(text: str | None) -> bool:
    return bool(_HANGUL_PATTERN.search(text or ""))


def is_blank(text: str | None) -> bool:
    return not (text or "").strip()

