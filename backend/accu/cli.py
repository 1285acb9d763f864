# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/accu/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (development; use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Entities:
# - python -m flask entities list
# - python -m flask entities create --name "Acme Carbon Pty Ltd"
#
# Inspection:
# - python -m flask batches list [--entity-id 1]
# - python -m flask loans overdue [--as-of 2024-12-31]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Entity, AccuBatch, Loan
from .services import loan_service, registry_service
from .time_utils import parse_iso_date, to_iso_date


@click.group('system')
def system_group():
    """Schema bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


# =============================================================================
# ENTITY COMMANDS
# =============================================================================

@click.group('entities')
def entities_group():
    """Entity (holder) management commands."""


@entities_group.command('list')
@with_appcontext
def list_entities():
    """List all entities with their batch counts."""
    entities = db.session.query(Entity).order_by(Entity.id.asc()).all()

    if not entities:
        click.echo("No entities found.")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'ID':<5} {'Name':<40} {'Batches'}")
    click.echo("="*60)

    for entity in entities:
        batch_count = db.session.query(AccuBatch).filter_by(entity_id=entity.id).count()
        click.echo(f"{entity.id:<5} {entity.name:<40} {batch_count}")

    click.echo("="*60 + "\n")


@entities_group.command('create')
@click.option('--name', required=True, help='Entity name')
@with_appcontext
def create_entity_cli(name):
    """Create a new entity."""
    name = name.strip()
    if not name:
        click.echo("FAIL Entity name cannot be blank")
        return

    entity = registry_service.create_entity(patch={"name": name})
    db.session.commit()

    click.echo(f"PASS Created entity: {entity.name} (ID: {entity.id})")


# =============================================================================
# BATCH COMMANDS
# =============================================================================

@click.group('batches')
def batches_group():
    """Batch inspection commands."""


@batches_group.command('list')
@click.option('--entity-id', type=int, help='Restrict to one entity')
@with_appcontext
def list_batches(entity_id):
    """List batches with classification, status and quantity."""
    query = db.session.query(AccuBatch)
    if entity_id is not None:
        query = query.filter(AccuBatch.entity_id == entity_id)
    batches = query.order_by(AccuBatch.acquisition_date.desc(), AccuBatch.id.desc()).all()

    if not batches:
        click.echo("No batches found.")
        return

    click.echo("\n" + "="*88)
    click.echo(f"{'ID':<5} {'Batch':<20} {'Class':<12} {'Status':<14} {'Qty':>10} {'Acquired':>12} {'Entity':>8}")
    click.echo("="*88)

    for b in batches:
        click.echo(
            f"{b.id:<5} {b.batch_number:<20} {b.classification:<12} {b.status:<14} "
            f"{b.quantity:>10} {to_iso_date(b.acquisition_date):>12} {b.entity_id:>8}"
        )

    click.echo("="*88 + "\n")


# =============================================================================
# LOAN COMMANDS
# =============================================================================

@click.group('loans')
def loans_group():
    """Loan inspection commands."""


@loans_group.command('overdue')
@click.option('--as-of', 'as_of', help='Reference date YYYY-MM-DD (default today)')
@click.option('--entity-id', type=int, help='Restrict to one entity')
@with_appcontext
def overdue_loans(as_of, entity_id):
    """List active loans whose buyback date has passed."""
    try:
        as_of_date = parse_iso_date(as_of) if as_of else None
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--as-of")

    loans: list[Loan] = loan_service.list_overdue_loans(as_of=as_of_date, entity_id=entity_id)

    if not loans:
        click.echo("No overdue loans.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Batch':<8} {'Creditor':<10} {'Qty':>10} {'Amount':>16} {'Buyback':>12}")
    click.echo("="*80)

    for loan in loans:
        click.echo(
            f"{loan.id:<5} {loan.batch_id:<8} {loan.creditor_id:<10} {loan.quantity:>10} "
            f"{str(loan.loan_amount):>16} {to_iso_date(loan.buyback_date):>12}"
        )

    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(entities_group)
    app.cli.add_command(batches_group)
    app.cli.add_command(loans_group)
