from __future__ import annotations

from pathlib import Path

from bisync_core.constants import DEFAULT_CONFIG_FILENAME, DEFAULT_DB_FILENAME


def resolve_workspace_root(root: Path | None = None) -> Path:
    if root is None:
        return Path.cwd()
    return Path(root).expanduser()


def workspace_config_path(root: Path | None = None) -> Path:
    return resolve_workspace_root(root) / DEFAULT_CONFIG_FILENAME


def workspace_db_path(root: Path | None = None) -> Path:
    return resolve_workspace_root(root) / DEFAULT_DB_FILENAME
