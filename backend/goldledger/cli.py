# Overview: Flask CLI command groups for bootstrap, price entry, and inspection.

# backend/goldledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables if missing and the default business settings row (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Prices:
# - python -m flask prices record --price-per-oz 2350 [--commodity gold] [--currency USD] [--source manual]
#   Append a spot price observation.
# - python -m flask prices latest [--commodity gold]
#   Show the most recent observation.
#
# Inspection:
# - python -m flask suppliers list [--all]
#   Suppliers with their outstanding balances (use --all to include inactive).
# - python -m flask vault summary
#   Stock weight and cost per location.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models.inventory import LOCATIONS
from .models.prices import COMMODITIES, PRICE_SOURCES
from .services import inventory_service, price_service, settings_service, supplier_service
from .validation import LedgerError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create missing tables and the default business settings."""
    click.echo("START Initializing gold ledger...")
    db.create_all()
    settings = settings_service.ensure_settings()
    click.echo(f"PASS Business settings ready: {settings.business_name} ({settings.default_currency})")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('prices')
def prices_group():
    """Spot price observations."""


@prices_group.command('record')
@click.option('--price-per-oz', required=True, type=float, help='Spot price per troy ounce')
@click.option('--commodity', default='gold', type=click.Choice(COMMODITIES), show_default=True)
@click.option('--currency', default='USD', show_default=True)
@click.option('--source', default='manual', type=click.Choice(PRICE_SOURCES), show_default=True)
@with_appcontext
def record_price_cli(price_per_oz, commodity, currency, source):
    try:
        obs = price_service.record_price(
            price_per_oz=price_per_oz,
            commodity=commodity,
            currency=currency,
            source=source,
        )
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(
        f"PASS Recorded {obs.commodity} {obs.price_per_oz:.2f}/oz "
        f"({obs.price_per_gram:.2f}/g) {obs.currency} from {obs.source}"
    )


@prices_group.command('latest')
@click.option('--commodity', default='gold', type=click.Choice(COMMODITIES), show_default=True)
@with_appcontext
def latest_price_cli(commodity):
    obs = price_service.find_latest_price(commodity)
    if obs is None:
        click.echo(f"No {commodity} prices recorded.")
        return
    click.echo(
        f"{obs.commodity}: {obs.price_per_oz:.2f}/oz ({obs.price_per_gram:.2f}/g) "
        f"{obs.currency} [{obs.source}] at {obs.to_dict()['timestamp']}"
    )


@click.group('suppliers')
def suppliers_group():
    """Supplier inspection."""


@suppliers_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive suppliers')
@with_appcontext
def list_suppliers_cli(include_inactive):
    result = supplier_service.list_suppliers(include_inactive=include_inactive, limit=500)
    suppliers = result["items"]
    if not suppliers:
        click.echo("No suppliers found.")
        return

    click.echo(f"\n{'ID':<6} {'Name':<30} {'Type':<10} {'Trades':>7} {'Balance':>14}  Status")
    click.echo("-" * 80)
    for s in suppliers:
        status = "active" if s.is_active else "inactive"
        click.echo(
            f"{s.id:<6} {s.name[:30]:<30} {s.type:<10} {s.total_transactions:>7} "
            f"{s.outstanding_balance:>14.2f}  {status}"
        )
    click.echo(f"\nTotal: {result['pagination']['total']} supplier(s)")


@click.group('vault')
def vault_group():
    """Vault inventory inspection."""


@vault_group.command('summary')
@with_appcontext
def vault_summary_cli():
    summary = inventory_service.summary_by_location()

    click.echo(f"\n{'Location':<14} {'Batches':>8} {'Weight (g)':>14} {'Cost':>14}")
    click.echo("-" * 54)
    for location in LOCATIONS + ("total",):
        row = summary[location]
        click.echo(
            f"{location:<14} {row['batch_count']:>8} {row['total_weight']:>14.4f} {row['total_cost']:>14.2f}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(prices_group)
    app.cli.add_command(suppliers_group)
    app.cli.add_command(vault_group)
