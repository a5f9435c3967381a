from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, NoReturn

import typer
from sqlalchemy.exc import SQLAlchemyError

from bisync_core.analysis.models import AnalysisRecord, TranslationCache
from bisync_core.llm.policy import (
    DEFAULT_MODEL_BY_PROVIDER,
    PROVIDERS,
    SECRET_LABELS,
    delete_secret,
    list_secret_statuses,
    resolve_provider,
    set_secret,
)
from bisync_core.llm.provider_base import TranslationProvider
from bisync_core.project.config import SyncConfig, TranslatorSettings, load_config, write_config
from bisync_core.project.paths import workspace_config_path, workspace_db_path
from bisync_core.session.session_manager import SessionManager
from bisync_core.session.session_store import SessionRepository
from bisync_core.sync.change_detector import detect_changed_sections
from bisync_core.sync.engine import SyncEngine

app = typer.Typer(help="bisync: keep analysis records and their Korean cache in step")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine activity to stderr."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(exc: Exception) -> NoReturn:
    typer.secho(str(exc), fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _write_json(payload: Any, out: Path | None) -> None:
    rendered = json.dumps(payload, ensure_ascii=False, indent=2)
    if out is None:
        typer.echo(rendered)
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(rendered + "\n", encoding="utf-8")
    typer.echo(f"Wrote: {out}")


def _load_record(path: Path, kind: str | None) -> AnalysisRecord:
    return AnalysisRecord.from_dict(_read_json(path), kind=kind)


def _load_cache(path: Path | None) -> TranslationCache | None:
    if path is None:
        return None
    return TranslationCache.from_dict(_read_json(path))


def _config(config_path: Path | None) -> SyncConfig:
    return load_config(config_path or workspace_config_path())


def _provider(config: SyncConfig) -> TranslationProvider:
    resolved = resolve_provider(config)
    if resolved.fallback_from:
        typer.secho(
            f"{resolved.fallback_from} is not configured; using the {resolved.provider_name} provider.",
            fg=typer.colors.YELLOW,
            err=True,
        )
    return resolved.provider


_KIND_HELP = "Record kind (STYLE, UI, LOGO, PIXELART_CHARACTER, ...). Inferred when omitted."
_CONFIG_HELP = "Path to bisync.yml. Defaults to ./bisync.yml."


@app.command("detect")
def detect_command(
    old: Path = typer.Argument(..., exists=True, dir_okay=False, help="Previous analysis JSON."),
    new: Path = typer.Argument(..., exists=True, dir_okay=False, help="Current analysis JSON."),
    kind: str | None = typer.Option(None, "--kind", help=_KIND_HELP),
) -> None:
    """Print the sections that changed between two analysis records."""

    try:
        old_record = _load_record(old, kind)
        new_record = _load_record(new, kind)
    except (RuntimeError, ValueError, OSError) as exc:
        _fail(exc)

    change_set = detect_changed_sections(old_record, new_record)
    if not change_set.has_changes:
        typer.echo("No changes.")
        return
    for section in change_set:
        typer.echo(section)
    if change_set.custom_prompt_changed:
        typer.echo("user_custom_prompt")


@app.command("sync")
def sync_command(
    new: Path = typer.Argument(..., exists=True, dir_okay=False, help="Current analysis JSON."),
    old: Path | None = typer.Option(None, "--old", exists=True, dir_okay=False, help="Previous analysis JSON."),
    cache: Path | None = typer.Option(None, "--cache", exists=True, dir_okay=False, help="Existing Korean cache JSON."),
    kind: str | None = typer.Option(None, "--kind", help=_KIND_HELP),
    out: Path | None = typer.Option(None, "--out", help="Write the result here instead of stdout."),
    config: Path | None = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Translate what changed and print the updated record and cache."""

    try:
        new_record = _load_record(new, kind)
        old_record = _load_record(old, kind) if old is not None else None
        old_cache = _load_cache(cache)
        engine = SyncEngine(_provider(_config(config)))
        change_set = engine.detect_changed_sections(old_record, new_record)
        result = asyncio.run(engine.synchronize(new_record, old_cache, change_set))
    except (RuntimeError, ValueError, OSError) as exc:
        _fail(exc)

    _write_json(
        {"analysis": result.record.to_dict(), "koreanAnalysis": result.cache.to_dict()},
        out,
    )


@app.command("edit")
def edit_command(
    record: Path = typer.Argument(..., exists=True, dir_okay=False, help="Analysis JSON."),
    section: str = typer.Argument(..., help="Section name, or 'prompts' for prompt fields."),
    field: str = typer.Argument(..., help="Field name inside the section."),
    text: str = typer.Argument(..., help="New text, in English or Korean."),
    cache: Path | None = typer.Option(None, "--cache", exists=True, dir_okay=False, help="Existing Korean cache JSON."),
    kind: str | None = typer.Option(None, "--kind", help=_KIND_HELP),
    out: Path | None = typer.Option(None, "--out", help="Write the result here instead of stdout."),
    config: Path | None = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Edit one field and update both representations."""

    try:
        current_record = _load_record(record, kind)
        current_cache = _load_cache(cache)
        engine = SyncEngine(_provider(_config(config)))
        result = asyncio.run(
            engine.edit_field(section, field, text, current_record, current_cache)
        )
    except (RuntimeError, ValueError, OSError) as exc:
        _fail(exc)

    _write_json(
        {"analysis": result.record.to_dict(), "koreanAnalysis": result.cache.to_dict()},
        out,
    )


@app.command("save")
def save_command(
    record: Path = typer.Argument(..., exists=True, dir_okay=False, help="Analysis JSON."),
    session_id: str | None = typer.Option(None, "--session", help="Existing session id."),
    name: str | None = typer.Option(None, "--name", help="Name for a new session."),
    kind: str | None = typer.Option(None, "--kind", help=_KIND_HELP),
    root: Path | None = typer.Option(None, "--root", file_okay=False, help="Workspace root. Defaults to the current directory."),
) -> None:
    """Synchronize an analysis into a stored session."""

    repository = SessionRepository(workspace_db_path(root))
    try:
        analysis = _load_record(record, kind)
        config = _config(workspace_config_path(root))
        manager = SessionManager(repository, _provider(config))
        if session_id is None:
            session_id = repository.create(name=name or record.stem, kind=analysis.kind).id
        result = asyncio.run(manager.save_analysis(session_id, analysis))
    except (RuntimeError, ValueError, OSError, SQLAlchemyError) as exc:
        _fail(exc)
    finally:
        repository.close()

    typer.echo(f"Session: {session_id}")
    typer.echo(f"Fields translated: {result.translated_fields}")


@app.command("sessions")
def sessions_command(
    root: Path | None = typer.Option(None, "--root", file_okay=False, help="Workspace root. Defaults to the current directory."),
) -> None:
    """List stored sessions, most recently updated first."""

    repository = SessionRepository(workspace_db_path(root))
    try:
        stored = repository.list()
    except (RuntimeError, ValueError, OSError, SQLAlchemyError) as exc:
        _fail(exc)
    finally:
        repository.close()

    if not stored:
        typer.echo("No sessions.")
        return
    for item in stored:
        typer.echo(f"{item.id}  {item.kind.value:<20} {item.updated_at}  {item.name}")


@app.command("init-config")
def init_config_command(
    path: Path = typer.Argument(Path("bisync.yml"), help="Where to write the config file."),
    provider: str = typer.Option("mock", "--provider", help="Translation provider (mock or openai)."),
    model: str | None = typer.Option(None, "--model", help="Provider model name."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
) -> None:
    """Write a default bisync.yml."""

    if path.exists() and not force:
        _fail(FileExistsError(f"Config already exists: {path}"))
    if provider not in PROVIDERS:
        _fail(ValueError(f"Unknown provider '{provider}'. Expected one of: {', '.join(PROVIDERS)}"))

    config = SyncConfig(
        translator=TranslatorSettings(
            provider=provider,
            model=model or DEFAULT_MODEL_BY_PROVIDER[provider],
        )
    )
    try:
        write_config(path, config)
    except OSError as exc:
        _fail(exc)
    typer.echo(f"Config written: {path}")


@app.command("set-secret")
def set_secret_command(
    name: str = typer.Argument(..., help=f"Secret name ({', '.join(SECRET_LABELS)})."),
    value: str = typer.Option(..., "--value", prompt=True, hide_input=True, help="Secret value."),
) -> None:
    """Store an API key in the OS keyring."""

    if name not in SECRET_LABELS:
        _fail(ValueError(f"Unknown secret '{name}'. Expected one of: {', '.join(SECRET_LABELS)}"))
    try:
        set_secret(name, value)
    except (RuntimeError, ValueError) as exc:
        _fail(exc)
    typer.echo(f"Stored {SECRET_LABELS[name]}.")


@app.command("secrets")
def secrets_command() -> None:
    """Show which API keys are stored in the OS keyring."""

    for status in list_secret_statuses():
        state = status.preview if status.is_configured else "not configured"
        typer.echo(f"{status.name:<20} {status.label}: {state}")


@app.command("delete-secret")
def delete_secret_command(
    name: str = typer.Argument(..., help=f"Secret name ({', '.join(SECRET_LABELS)})."),
) -> None:
    """Remove an API key from the OS keyring."""

    if name not in SECRET_LABELS:
        _fail(ValueError(f"Unknown secret '{name}'. Expected one of: {', '.join(SECRET_LABELS)}"))
    try:
        delete_secret(name)
    except RuntimeError as exc:
        _fail(exc)
    typer.echo(f"Removed {SECRET_LABELS[name]}.")


if __name__ == "__main__":
    app()
