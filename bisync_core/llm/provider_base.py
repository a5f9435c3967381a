from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum

from bisync_core.sync.language import contains_hangul


class TranslationDirection(str, Enum):
    TO_SOURCE = "cached_to_source"
    TO_CACHE = "source_to_cached"


class TranslationProvider(ABC):
    @abstractmethod
    async def translate_batch(
        self,
        texts: Sequence[str],
        direction: TranslationDirection,
    ) -> list[str]:
        """Translate texts in order; the result has the same length and order."""

    def classify_language(self, text: str) -> bool:
        """Return True when text is written in the cached language."""
        return contains_hangul(text)
