"""
Command line interface.

Commands are registered on the Flask CLI (``flask --app dualsync.app ...``)
and exposed through the ``dualsync`` console script:

    dualsync migrate [--dry-run | --verify] [--force] [--target NAME ...]
    dualsync reconcile ENTITY [--filter JSON] [--deleted]

Dual-write failure counters live in the serving process and are read over
HTTP (GET /dual-write/failures), not from a CLI process.
"""

import json
import sys
from typing import List

import click
from flask import Flask, current_app
from flask.cli import FlaskGroup, with_appcontext

from dualsync.config import MigrationSettings
from dualsync.services.base import ConfigurationError
from dualsync.services.migration_driver import MigrationRunner, RunMode, SchemaRunReport
from dualsync.transformers import TRANSFORMER_REGISTRY

SUMMARY_COLUMNS = ('entity', 'source', 'target', 'synced', 'errors', 'duration', 'status')


def _services():
    return current_app.extensions['dualsync']


def _require_source(services):
    if services.source is None:
        raise click.ClickException("MONGODB_URI is not configured; no source store available")
    return services.source


def format_report(report: SchemaRunReport) -> List[str]:
    """Render a schema run as summary table lines."""
    header = f"== {report.target_name} (schema: {report.schema or 'default'}, mode: {report.mode.value})"
    if report.fatal_error:
        return [header, f"FATAL: {report.fatal_error}"]

    rows = [SUMMARY_COLUMNS]
    for entity in report.entities:
        rows.append((
            entity.entity_type,
            str(entity.source_count),
            str(entity.target_count),
            str(entity.synced),
            str(entity.error_total),
            f"{entity.duration:.2f}s",
            entity.status + (' (skipped)' if entity.skipped else ''),
        ))
    widths = [max(len(row[i]) for row in rows) for i in range(len(SUMMARY_COLUMNS))]
    lines = [header]
    for row in rows:
        lines.append('  '.join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip())

    for entity in report.entities:
        for sample in entity.error_samples:
            lines.append(f"  ! {entity.entity_type}: {sample}")
    return lines


@click.command('migrate')
@click.option('--dry-run', is_flag=True, help='Report counts only; write nothing.')
@click.option('--verify', is_flag=True, help='Compare source and target counts.')
@click.option('--force', is_flag=True, help='Re-run entity types already completed.')
@click.option('--target', 'targets', multiple=True,
              help='Target name from MIGRATION_TARGETS; repeatable, or "both"/"all".')
@with_appcontext
def migrate_command(dry_run, verify, force, targets):
    """Backfill the target schemas from the source store."""
    if dry_run and verify:
        raise click.UsageError("--dry-run and --verify are mutually exclusive")
    mode = RunMode.DRY_RUN if dry_run else RunMode.VERIFY if verify else RunMode.MIGRATE

    services = _services()
    source = _require_source(services)
    try:
        settings = MigrationSettings.from_mapping(current_app.config)
        runner = MigrationRunner(
            source,
            settings,
            engine_factory=services.engine_factory,
            dispose_engines=services.dispose_engines,
        )
        reports = runner.run(targets, mode=mode, force=force)
    except ConfigurationError as e:
        raise click.ClickException(e.message)

    for report in reports:
        for line in format_report(report):
            click.echo(line)

    if any(report.has_errors for report in reports):
        sys.exit(1)


@click.command('reconcile')
@click.argument('entity_type')
@click.option('--filter', 'filter_json', default='{}', help='Source filter as a JSON object.')
@click.option('--limit', type=int, default=None, help='Override RESYNC_LIMIT.')
@click.option('--deleted', is_flag=True, help='Sweep target rows deleted in the source.')
@with_appcontext
def reconcile_command(entity_type, filter_json, limit, deleted):
    """Re-sync one entity type after a bulk update or bulk delete."""
    if entity_type not in TRANSFORMER_REGISTRY:
        raise click.BadParameter(f"unknown entity type {entity_type!r}", param_hint='ENTITY_TYPE')

    services = _services()
    _require_source(services)
    verifier = services.verifier

    if deleted:
        result = verifier.reconcile_after_bulk_delete(entity_type)
    else:
        try:
            source_filter = json.loads(filter_json)
        except ValueError as e:
            raise click.BadParameter(f"invalid JSON: {e}", param_hint='--filter')
        if not isinstance(source_filter, dict):
            raise click.BadParameter("filter must be a JSON object", param_hint='--filter')
        result = verifier.reconcile_after_bulk_update(entity_type, source_filter, limit=limit)

    click.echo(json.dumps(result.to_dict(), indent=2))
    if result.failed:
        sys.exit(1)


def register_commands(app: Flask) -> None:
    app.cli.add_command(migrate_command)
    app.cli.add_command(reconcile_command)


def _create_app():
    from dualsync.app import create_app
    return create_app()


@click.group(cls=FlaskGroup, create_app=_create_app)
def main():
    """dualsync replication and migration commands."""
