# Overview: Flask CLI command groups for schema bootstrap and debt reconciliation.

# backend/creditpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to creditpos.wsgi (PowerShell: $env:FLASK_APP="creditpos.wsgi").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent; use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger maintenance:
# - python -m flask ledger reconcile-debts [--fix]
#   Compare every client's cached debt with the pending amounts of their
#   CREDIT sales; --fix overwrites the cached value.
# - python -m flask ledger client-debt <client_id>
#   Show one client's cached vs recomputed debt.

import click
from flask.cli import with_appcontext

from .errors import ReconciliationError
from .extensions import db
from .services import debt_service


@click.group('system')
def system_group():
    """Schema bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping all data.')
@with_appcontext
def reset_db_command(yes):
    """Drop and recreate all tables."""
    if not yes:
        click.echo("Refusing to reset without --yes.")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("Database reset.")


@click.group('ledger')
def ledger_group():
    """Credit ledger maintenance commands."""


@ledger_group.command('reconcile-debts')
@click.option('--fix', is_flag=True, help='Overwrite drifted debts with the recomputed value.')
@with_appcontext
def reconcile_debts_command(fix):
    """Report (and optionally correct) client debt drift."""
    discrepancies = debt_service.reconcile_all(fix=fix)
    if not discrepancies:
        click.echo("All client debts consistent.")
        return

    for d in discrepancies:
        click.echo(
            f"{d.client_id}: recorded={d.recorded_cents} computed={d.computed_cents} drift={d.drift_cents}"
            + (" (fixed)" if fix else "")
        )
    click.echo(f"{len(discrepancies)} client(s) with drift.")
    if not fix:
        raise SystemExit(1)


@ledger_group.command('client-debt')
@click.argument('client_id')
@with_appcontext
def client_debt_command(client_id):
    """Show one client's cached vs recomputed debt."""
    try:
        d = debt_service.reconcile_client_debt(client_id)
    except ReconciliationError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"recorded={d.recorded_cents} computed={d.computed_cents} drift={d.drift_cents}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
