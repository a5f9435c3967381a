from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bisync_core.llm.provider_base import TranslationProvider
    from bisync_core.project.config import SyncConfig

logger = logging.getLogger(__name__)

KEYRING_SERVICE_NAME = "bisync"
SECRET_LABELS = {
    "openai_api_key": "OpenAI API Key",
}

PROVIDERS = ("mock", "openai")

DEFAULT_MODEL_BY_PROVIDER = {
    "mock": "mock-v1",
    "openai": "gpt-4o-mini",
}

try:
    import keyring
    from keyring.errors import KeyringError, PasswordDeleteError
except ImportError:  # pragma: no cover - dependency failure path
    keyring = None
    KeyringError = PasswordDeleteError = RuntimeError

ProviderFactory = Callable[[str, str], "TranslationProvider"]


def _keyring_available() -> bool:
    if keyring is None:
        return False
    if not hasattr(keyring, "get_keyring"):
        return True
    try:
        backend = keyring.get_keyring()
    except KeyringError:
        return False
    return backend.__class__.__module__ != "keyring.backends.fail"


@dataclass(slots=True, frozen=True)
class StoredSecretStatus:
    name: str
    label: str
    is_configured: bool
    preview: str | None


@dataclass(slots=True, frozen=True)
class TranslatorPolicy:
    provider: str
    model: str


@dataclass(slots=True)
class ResolvedProvider:
    provider_name: str
    model: str
    provider: TranslationProvider
    fallback_from: str | None = None


def mask_secret_value(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        return ""
    if len(normalized) <= 8:
        return "*" * len(normalized)
    hidden = len(normalized) - 8
    return f"{normalized[:4]}{'*' * hidden}{normalized[-4:]}"


def list_secret_statuses() -> list[StoredSecretStatus]:
    statuses: list[StoredSecretStatus] = []
    for name, label in SECRET_LABELS.items():
        value = get_secret(name)
        statuses.append(
            StoredSecretStatus(
                name=name,
                label=label,
                is_configured=bool(value),
                preview=mask_secret_value(value) if value else None,
            )
        )
    return statuses


def set_secret(name: str, value: str) -> None:
    normalized = value.strip()
    if not normalized:
        raise ValueError("Secret value must not be empty.")
    if not _keyring_available():
        raise RuntimeError(
            "No secret backend available. Install a usable python keyring backend."
        )
    try:
        keyring.set_password(KEYRING_SERVICE_NAME, name, normalized)
    except KeyringError as exc:
        raise RuntimeError(f"Secret storage failed: {exc}") from exc


def get_secret(name: str) -> str | None:
    if not _keyring_available():
        return None
    try:
        value = keyring.get_password(KEYRING_SERVICE_NAME, name)
    except KeyringError as exc:
        logger.warning("Keyring lookup for %s failed: %s", name, exc)
        return None
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def delete_secret(name: str) -> None:
    if not _keyring_available():
        return
    try:
        keyring.delete_password(KEYRING_SERVICE_NAME, name)
    except PasswordDeleteError:
        return
    except KeyringError as exc:
        raise RuntimeError(f"Secret deletion failed: {exc}") from exc


def _coerce_provider(value: Any, *, fallback: str) -> str:
    normalized = str(value or "").strip().lower()
    if normalized in PROVIDERS:
        return normalized
    return fallback


def _coerce_model(value: Any, *, provider: str) -> str:
    model = str(value or "").strip()
    if model:
        return model
    return DEFAULT_MODEL_BY_PROVIDER[provider]


def translator_policy(config: SyncConfig) -> TranslatorPolicy:
    provider = _coerce_provider(config.translator.provider, fallback="mock")
    model = config.translator.model
    if provider != config.translator.provider.strip().lower():
        model = ""
    return TranslatorPolicy(provider=provider, model=_coerce_model(model, provider=provider))


def default_provider_factory(config: SyncConfig) -> ProviderFactory:
    from bisync_core.llm.provider_mock import MockProvider
    from bisync_core.llm.provider_openai import OpenAIProvider

    def _factory(provider_name: str, model: str) -> TranslationProvider:
        if provider_name == "mock":
            return MockProvider(model=model)
        if provider_name == "openai":
            return OpenAIProvider(
                model=model,
                timeout_seconds=config.timeout_seconds,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                source_locale=config.source_locale,
                cache_locale=config.cache_locale,
            )
        raise ValueError(f"Unsupported translation provider '{provider_name}'")

    return _factory


def resolve_provider(
    config: SyncConfig,
    *,
    provider_factory: ProviderFactory | None = None,
    strict_provider_selection: bool = False,
) -> ResolvedProvider:
    policy = translator_policy(config)
    provider_name = policy.provider
    model = policy.model
    fallback_from: str | None = None

    if provider_name == "openai" and not get_secret("openai_api_key"):
        if strict_provider_selection:
            raise RuntimeError(
                "OpenAI provider was selected, but openai_api_key is not configured in keyring."
            )
        logger.warning("openai_api_key is not configured; falling back to the mock provider")
        provider_name = "mock"
        model = DEFAULT_MODEL_BY_PROVIDER[provider_name]
        fallback_from = "openai"

    factory = provider_factory or default_provider_factory(config)
    return ResolvedProvider(
        provider_name=provider_name,
        model=model,
        provider=factory(provider_name, model),
        fallback_from=fallback_from,
    )
