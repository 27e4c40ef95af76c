"""
cli.py — Click CLI entrypoint for the batch jobs.

Usage:
    rbi reconcile --dir ./data/psgc
    rbi reconcile --dry-run
    rbi reconcile --publish
    rbi sweep --as-of 2026-10-18
    rbi audit
    rbi publish
    rbi serve --port 8000
"""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import datetime

import click
import structlog

from rbi_shared.config import settings
from rbi_shared.errors import StorageUnavailable
from rbi_pipeline.utils.logging import configure_logging

log = structlog.get_logger(__name__)


def _echo_json(payload: dict) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@click.group()
@click.option(
    "--log-level",
    default=settings.log_level,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
def main(log_level: str) -> None:
    """rbi geography reconciliation and registry derivation jobs."""
    configure_logging(log_level=log_level)


@main.command()
@click.option("--dir", "extract_dir", type=click.Path(file_okay=False), default=None,
              help="Directory holding the PSGC CSV extracts (default: PSGC_EXTRACT_DIR).")
@click.option("--url", "base_url", default=None, help="Read extracts from this base URL instead.")
@click.option("--dry-run", is_flag=True, help="Validate and report without writing.")
@click.option("--publish", is_flag=True, help="Mirror the geography tables to Supabase afterwards.")
def reconcile(extract_dir: str | None, base_url: str | None, dry_run: bool, publish: bool) -> None:
    """Reconcile the geography hierarchy against PSGC extracts."""
    from rbi_pipeline.pipelines.reconciliation import run

    try:
        report = asyncio.run(
            run(extract_dir, base_url=base_url, dry_run=dry_run, publish=publish)
        )
    except StorageUnavailable as exc:
        log.error("reconcile_aborted", error=exc.message)
        click.echo(f"Storage unavailable: {exc.message}", err=True)
        sys.exit(2)
    _echo_json(report.to_dict())
    if report.pending_unresolved:
        sys.exit(1)


@main.command()
@click.option("--as-of", "as_of", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Evaluation date (default: today, UTC).")
@click.option("--no-resume", is_flag=True, help="Ignore any checkpoint and start from the first resident.")
def sweep(as_of: datetime | None, no_resume: bool) -> None:
    """Re-evaluate age-dependent resident classifications."""
    from rbi_pipeline.pipelines.derivation_sweep import run

    try:
        report = asyncio.run(run(as_of.date() if as_of else None, resume=not no_resume))
    except StorageUnavailable as exc:
        log.error("sweep_aborted", error=exc.message)
        click.echo(f"Storage unavailable: {exc.message}", err=True)
        sys.exit(2)
    _echo_json(report.to_dict())


@main.command()
def audit() -> None:
    """Report hierarchy integrity (orphans, independence-rule violations)."""
    from rbi_shared.db import get_database
    from rbi_shared.stores.geography import GeographyStore

    report = GeographyStore(get_database()).audit()
    _echo_json(report)
    if not report["healthy"]:
        sys.exit(1)


@main.command()
def publish() -> None:
    """Mirror the committed geography tables to Supabase."""
    from rbi_shared.db import get_database
    from rbi_pipeline.loaders.supabase_loader import SupabaseLoader

    results = asyncio.run(SupabaseLoader().publish_geography(get_database()))
    for r in results:
        click.echo(f"  {r.table:16s} {r.status:16s} {r.records_loaded} rows")
    if not all(r.success for r in results):
        sys.exit(1)


@main.command()
@click.option("--host", default=settings.api_host, show_default=True)
@click.option("--port", default=settings.api_port, type=int, show_default=True)
@click.option("--reload", is_flag=True, help="Reload on source changes.")
def serve(host: str, port: int, reload: bool) -> None:
    """Serve the registry API with uvicorn."""
    import uvicorn

    uvicorn.run("rbi_api.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
