from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

from bisync_core.constants import CACHE_LOCALE, SOURCE_LOCALE


class TranslatorSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider: str = "mock"
    model: str = "mock-v1"


class SyncConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source_locale: str = SOURCE_LOCALE
    cache_locale: str = CACHE_LOCALE
    translator: TranslatorSettings = Field(default_factory=TranslatorSettings)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, gt=0)
    timeout_seconds: float = Field(default=60.0, gt=0)
    autosave_delay_seconds: float = Field(default=1.0, ge=0)


def write_config(config_path: Path, config: SyncConfig) -> None:
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config.model_dump(mode="python"), handle, sort_keys=False)


def read_config(config_path: Path) -> SyncConfig:
    with config_path.open("r", encoding="utf-8") as handle:
        content = yaml.safe_load(handle) or {}
    return SyncConfig.model_validate(content)


def load_config(config_path: Path | None) -> SyncConfig:
    if config_path is None or not Path(config_path).exists():
        return SyncConfig()
    return read_config(Path(config_path))
