from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from bisync_core.constants import CACHE_LOCALE, SOURCE_LOCALE
from bisync_core.llm.policy import get_secret
from bisync_core.llm.prompts import build_batch_translation_prompt, parse_numbered_lines
from bisync_core.llm.provider_base import TranslationDirection, TranslationProvider

logger = logging.getLogger(__name__)


class OpenAIProviderError(RuntimeError):
    """Base exception for OpenAI provider failures."""


class OpenAIKeyMissingError(OpenAIProviderError):
    """Raised when no OpenAI API key is available in keyring."""


@dataclass(slots=True)
class OpenAIProvider(TranslationProvider):
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1/chat/completions"
    timeout_seconds: float = 60.0
    temperature: float = 0.3
    max_tokens: int = 2048
    source_locale: str = SOURCE_LOCALE
    cache_locale: str = CACHE_LOCALE
    api_key: str | None = None
    transport: httpx.AsyncBaseTransport | None = None

    def _api_key(self) -> str:
        api_key = self.api_key or get_secret("openai_api_key")
        if not api_key:
            raise OpenAIKeyMissingError(
                "OpenAI API key is not configured. Store it with `bisync set-secret openai_api_key`."
            )
        return api_key

    async def translate_batch(
        self,
        texts: Sequence[str],
        direction: TranslationDirection,
    ) -> list[str]:
        if not texts:
            return []

        prompt = build_batch_translation_prompt(
            texts=texts,
            direction=direction,
            source_locale=self.source_locale,
            cache_locale=self.cache_locale,
        )
        payload = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "messages": [
                {
                    "role": "system",
                    "content": (
                        "You are a translator for image-generation prompt attributes. "
                        "Follow the output format strictly."
                    ),
                },
                {"role": "user", "content": prompt},
            ],
        }
        headers = {
            "Authorization": f"Bearer {self._api_key()}",
            "Content-Type": "application/json",
        }

        logger.info(
            "OpenAI batch translate: model=%s, direction=%s, texts=%d",
            self.model,
            direction.value,
            len(texts),
        )
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.post(self.base_url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise OpenAIProviderError(f"OpenAI request failed: {exc}") from exc

        if response.status_code >= 400:
            body = response.text.strip()
            detail = body[:300] if body else "no response body"
            raise OpenAIProviderError(
                f"OpenAI request failed with HTTP {response.status_code}: {detail}"
            )

        try:
            payload_json = response.json()
            choices = payload_json.get("choices", [])
            first = choices[0]
            message = first.get("message", {})
            content = message.get("content", "")
        except (ValueError, LookupError, AttributeError) as exc:
            raise OpenAIProviderError("OpenAI response parsing failed.") from exc

        if not isinstance(content, str) or not content.strip():
            raise OpenAIProviderError("OpenAI response did not include text content.")

        try:
            return parse_numbered_lines(content, expected_count=len(texts))
        except ValueError as exc:
            raise OpenAIProviderError(f"OpenAI batch response was malformed: {exc}") from exc
