from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

import bisync_core.llm.policy as policy_module
from bisync_core.llm.policy import (
    delete_secret,
    get_secret,
    list_secret_statuses,
    mask_secret_value,
    resolve_provider,
    set_secret,
    translator_policy,
)
from bisync_core.llm.provider_mock import MockProvider
from bisync_core.llm.provider_openai import OpenAIProvider
from bisync_core.project.config import (
    SyncConfig,
    TranslatorSettings,
    load_config,
    read_config,
    write_config,
)


class _FakeKeyring:
    def __init__(self) -> None:
        self._store: dict[tuple[str, str], str] = {}

    def set_password(self, service: str, name: str, value: str) -> None:
        self._store[(service, name)] = value

    def get_password(self, service: str, name: str) -> str | None:
        return self._store.get((service, name))

    def delete_password(self, service: str, name: str) -> None:
        self._store.pop((service, name), None)


@pytest.fixture
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> _FakeKeyring:
    fake = _FakeKeyring()
    monkeypatch.setattr(policy_module, "keyring", fake)
    return fake


def _openai_config(model: str = "gpt-4o-mini") -> SyncConfig:
    return SyncConfig(translator=TranslatorSettings(provider="openai", model=model))


def test_config_round_trip_without_secrets(tmp_path: Path, fake_keyring: _FakeKeyring) -> None:
    config_path = tmp_path / "bisync.yml"
    set_secret("openai_api_key", "sk-test-super-secret")

    write_config(config_path, _openai_config())
    loaded = read_config(config_path)

    assert loaded.translator.provider == "openai"
    assert loaded.cache_locale == "ko"
    assert "sk-test-super-secret" not in config_path.read_text(encoding="utf-8")
    assert fake_keyring.get_password("bisync", "openai_api_key") == "sk-test-super-secret"


def test_config_rejects_unknown_keys(tmp_path: Path) -> None:
    config_path = tmp_path / "bisync.yml"
    config_path.write_text(yaml.safe_dump({"translator": {"provider": "mock"}, "api_key": "x"}), encoding="utf-8")

    with pytest.raises(ValidationError):
        read_config(config_path)


def test_missing_config_falls_back_to_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.yml")

    assert config == SyncConfig()
    assert config.translator.provider == "mock"
    assert load_config(None) == SyncConfig()


def test_unknown_provider_falls_back_to_mock_policy() -> None:
    config = SyncConfig(translator=TranslatorSettings(provider="someday", model="x-1"))

    policy = translator_policy(config)

    assert policy.provider == "mock"
    assert policy.model == "mock-v1"


def test_openai_without_key_falls_back_to_mock(fake_keyring: _FakeKeyring) -> None:
    resolved = resolve_provider(_openai_config())

    assert resolved.provider_name == "mock"
    assert resolved.fallback_from == "openai"
    assert isinstance(resolved.provider, MockProvider)


def test_strict_selection_requires_key(fake_keyring: _FakeKeyring) -> None:
    with pytest.raises(RuntimeError, match="openai_api_key"):
        resolve_provider(_openai_config(), strict_provider_selection=True)


def test_openai_with_key_builds_configured_provider(fake_keyring: _FakeKeyring) -> None:
    set_secret("openai_api_key", "sk-live")
    config = _openai_config(model="gpt-test").model_copy(update={"timeout_seconds": 12.5})

    resolved = resolve_provider(config)

    assert resolved.fallback_from is None
    assert isinstance(resolved.provider, OpenAIProvider)
    assert resolved.provider.model == "gpt-test"
    assert resolved.provider.timeout_seconds == 12.5


def test_custom_provider_factory_is_used(fake_keyring: _FakeKeyring) -> None:
    built: list[tuple[str, str]] = []

    def factory(name: str, model: str) -> MockProvider:
        built.append((name, model))
        return MockProvider(model=model)

    resolve_provider(SyncConfig(), provider_factory=factory)

    assert built == [("mock", "mock-v1")]


def test_secret_helpers(fake_keyring: _FakeKeyring) -> None:
    with pytest.raises(ValueError):
        set_secret("openai_api_key", "   ")

    assert get_secret("openai_api_key") is None
    set_secret("openai_api_key", "  sk-abcdefghijkl  ")
    assert get_secret("openai_api_key") == "sk-abcdefghijkl"

    statuses = list_secret_statuses()
    assert statuses[0].is_configured is True
    assert statuses[0].preview == "sk-a*******ijkl"
    assert mask_secret_value("short") == "*****"


def test_delete_secret(fake_keyring: _FakeKeyring) -> None:
    set_secret("openai_api_key", "sk-to-remove")

    delete_secret("openai_api_key")

    assert get_secret("openai_api_key") is None
