# Overview: Flask CLI command groups for bootstrap and audit inspection.

# backend/toolaudit/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app toolaudit <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app toolaudit system init-db
#   Create any missing tables (idempotent).
# - python -m flask --app toolaudit system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Audit inspection:
# - python -m flask --app toolaudit audits dashboard [--department "Dept A"]
#   Audit progress per storage location.
# - python -m flask --app toolaudit audits report --department "Dept A" --storage-name "Main Shelf" --storage-code MS-01
#   Print the EQ5044 history matrix for one storage.
# - python -m flask --app toolaudit audits snapshots --department "Dept A" --storage-code MS-01
#   List audit snapshots with their sequence numbers and counts.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import dashboard_service, report_service, snapshot_service
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This deletes every audit snapshot as well.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA including audit history. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete")


@click.group('audits')
def audits_group():
    """Audit progress and history inspection."""


@audits_group.command('dashboard')
@click.option('--department', default=None, help='Filter by department')
@with_appcontext
def show_dashboard(department):
    """Audit progress per storage location."""
    rows = dashboard_service.get_storage_dashboard(department)
    if not rows:
        click.echo("No storages with tools or toolkits")
        return

    for r in rows:
        click.echo(
            f"{r['department']} / {r['storage_name']} ({r['storage_code']}): "
            f"{r['tools_checked']}/{r['tools_total']} checked, "
            f"{r['progress_percent']}% [{r['audit_status']}]"
        )


@audits_group.command('report')
@click.option('--department', required=True)
@click.option('--storage-name', required=True)
@click.option('--storage-code', required=True)
@click.option('--json', 'as_json', is_flag=True, help='Print the raw report as JSON')
@with_appcontext
def show_report(department, storage_name, storage_code, as_json):
    """Print the EQ5044 history matrix for one storage."""
    try:
        report = report_service.get_eq5044_report(department, storage_name, storage_code)
    except (ValidationError, report_service.ReportError) as e:
        raise click.ClickException(str(e))

    if report is None:
        raise click.ClickException("Storage not found or has no tools")

    if as_json:
        click.echo(json.dumps(report, indent=2, default=str))
        return

    header = report["header"]
    summary = report["summary"]
    click.echo(f"EQ5044  {header['department']} / {header['storage_name']} ({header['storage_code']})")
    click.echo(
        f"Audited {summary['tools_audited']}/{summary['total_tools']} "
        f"({summary['completion_percent']}%)"
    )

    columns = report["columns"]
    for col in columns:
        marker = "  [supervisor sign-off]" if col["supervisor_required"] else ""
        click.echo(f"  {col['label']}{marker}")

    for section in report["locations"]:
        click.echo(f"\n[{section['qr_location']}]")
        for row in section["items"]:
            marks = "".join(
                "X" if row["history"].get(col["id"]) else "."
                for col in columns
            )
            indent = "    " if row["row_type"] == "kit_content" else "  "
            click.echo(f"{indent}{marks}  {row['description']} x{row['qty']}")


@audits_group.command('snapshots')
@click.option('--department', default=None)
@click.option('--storage-name', default=None)
@click.option('--storage-code', default=None)
@with_appcontext
def list_snapshots(department, storage_name, storage_code):
    """List audit snapshots oldest first."""
    snapshots = snapshot_service.list_snapshots(
        department=department,
        storage_name=storage_name,
        storage_code=storage_code,
    )
    if not snapshots:
        click.echo("No audit snapshots")
        return

    for s in snapshots:
        supervisor = s.supervisor_name or "-"
        click.echo(
            f"#{s.sequence_number:<3} {s.snapshot_date:%Y-%m-%d %H:%M} "
            f"{s.storage_code:<10} present {s.present_tools}/{s.total_tools} "
            f"supervisor {supervisor}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(audits_group)
