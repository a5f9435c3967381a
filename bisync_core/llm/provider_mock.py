from __future__ import annotations

from collections.abc import Sequence

from bisync_core.constants import CACHE_LOCALE, SOURCE_LOCALE
from bisync_core.llm.provider_base import TranslationDirection, TranslationProvider


class MockProvider(TranslationProvider):
    def __init__(self, *, model: str = "mock-v1") -> None:
        self.model = model

    async def translate_batch(
        self,
        texts: Sequence[str],
        direction: TranslationDirection,
    ) -> list[str]:
        locale = SOURCE_LOCALE if direction is TranslationDirection.TO_SOURCE else CACHE_LOCALE
        return [f"[{locale}] {text}" for text in texts]
