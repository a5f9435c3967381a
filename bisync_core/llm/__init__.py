from __future__ import annotations

from bisync_core.llm.policy import (
    ResolvedProvider,
    TranslatorPolicy,
    delete_secret,
    get_secret,
    list_secret_statuses,
    resolve_provider,
    set_secret,
)
from bisync_core.llm.prompts import build_batch_translation_prompt, parse_numbered_lines
from bisync_core.llm.provider_base import TranslationDirection, TranslationProvider
from bisync_core.llm.provider_mock import MockProvider
from bisync_core.llm.provider_openai import (
    OpenAIKeyMissingError,
    OpenAIProvider,
    OpenAIProviderError,
)

__all__ = [
    "MockProvider",
    "OpenAIKeyMissingError",
    "OpenAIProvider",
    "OpenAIProviderError",
    "ResolvedProvider",
    "TranslationDirection",
    "TranslationProvider",
    "TranslatorPolicy",
    "build_batch_translation_prompt",
    "delete_secret",
    "get_secret",
    "list_secret_statuses",
    "parse_numbered_lines",
    "resolve_provider",
    "set_secret",
]
