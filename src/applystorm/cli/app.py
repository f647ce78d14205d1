from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
import uvicorn

from applystorm.api.app import create_app
from applystorm.config import get_settings
from applystorm.core.classifier import Classifier, parse_jobs
from applystorm.core.orchestrator import ApplyOrchestrator
from applystorm.core.taxonomy import display_label
from applystorm.db.init import get_store, init_database
from applystorm.db.seed import import_export
from applystorm.errors import ConfigurationError, ValidationError
from applystorm.llm.router import RoleSuggester
from applystorm.logging_config import configure_logging
from applystorm.mail.mailer import build_mailer

app = typer.Typer(help="ApplyStorm CLI")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


def _classifier() -> Classifier:
    settings = get_settings()
    return Classifier(settings=settings, suggester=RoleSuggester(settings))


def _orchestrator() -> ApplyOrchestrator:
    settings = get_settings()
    try:
        mailer = build_mailer(settings)
    except ConfigurationError as exc:
        typer.echo(json.dumps({"ok": False, "error": str(exc)}, indent=2))
        raise typer.Exit(code=1) from exc
    return ApplyOrchestrator(get_store(), mailer, settings=settings, classifier=_classifier())


@app.command("init")
def init_cmd() -> None:
    """Create the document table and data directory."""
    configure_logging()
    result = init_database()
    typer.echo(json.dumps({"ok": True, **result}, indent=2))


@app.command("import")
def import_cmd(
    file: Path = typer.Option(..., "--file", exists=True, readable=True),
    replace: bool = typer.Option(False, "--replace"),
) -> None:
    """Load a realtime-database JSON export (users, expats_jobs, applyLog)."""
    configure_logging()
    ensure_initialized()
    payload = json.loads(file.read_text(encoding="utf-8"))
    try:
        counts = asyncio.run(import_export(get_store(), payload, replace=replace))
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(json.dumps({"ok": True, "imported": counts}, indent=2))


@app.command("apply")
def apply_cmd(
    uid: str = typer.Option(..., "--uid"),
    role: list[str] = typer.Option(..., "--role", help="Role label; repeat up to three times"),
) -> None:
    """Apply now for one user, like the HTTP trigger."""
    configure_logging()
    ensure_initialized()
    orchestrator = _orchestrator()

    async def _run():
        result = await orchestrator.process_apply(uid, role)
        if result.ok:
            await orchestrator.save_preferences(uid, role)
        await orchestrator.drain()
        return result

    try:
        result = asyncio.run(_run())
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(json.dumps(result.model_dump(), indent=2))


@app.command("sweep")
def sweep_cmd() -> None:
    """Daily run over every user with selected roles (cron: 0 6 * * * UTC)."""
    configure_logging()
    ensure_initialized()
    orchestrator = _orchestrator()

    async def _run():
        summary = await orchestrator.run_apply_for_all_users()
        await orchestrator.drain()
        return summary

    summary = asyncio.run(_run())
    typer.echo(json.dumps({"ok": True, **summary.model_dump()}, indent=2))


@app.command("classify")
def classify_cmd(limit: int | None = typer.Option(None, "--limit", min=1)) -> None:
    """Tag uncached jobs and store the label on each job (cron: 0 */6 * * * UTC)."""
    configure_logging()
    ensure_initialized()
    updated = asyncio.run(_classifier().categorize_pending(get_store(), limit=limit))
    typer.echo(json.dumps({"ok": True, "updated": updated}, indent=2))


@app.command("labels")
def labels_cmd(top: int = typer.Option(20, "--top", min=1)) -> None:
    """Show how many jobs fall under each role label."""
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    jobs = parse_jobs(asyncio.run(get_store().get(settings.jobs_path)))
    breakdown = _classifier().label_breakdown(jobs.values(), top=top)
    typer.echo(
        json.dumps(
            [{"label": label, "display": display_label(label), "count": count} for label, count in breakdown],
            indent=2,
        )
    )


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    app_instance = create_app()
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)
