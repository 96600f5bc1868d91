# Overview: Flask CLI command groups for bootstrap, ledger verification, and maintenance.

# backend/costledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger inspection:
# - python -m flask ledger verify [--product-id 12]
#   Replay the quantity ledger and check every chain against current_quantity.
#
# Outbox:
# - python -m flask outbox list
#   Show pending messages with attempts and last error.
# - python -m flask outbox dispatch [--limit 100]
#   Hand pending messages (cost expenses) to their handlers.
#
# Costs:
# - python -m flask costs prune-history [--keep 50]
#   Keep only the newest N cost history rows per product.
# - python -m flask costs report [--start 2026-01-01] [--end 2026-03-31]
#   Print category totals and the monthly breakdown.

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .engine import get_engine
from .errors import EngineError, InvariantViolation
from .extensions import db
from .models import Product
from .time_utils import parse_iso_datetime


@click.group('system')
def system_group():
    """System bootstrap commands."""


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

    This will DELETE ALL DATA, including the append-only ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete")


@click.group('ledger')
def ledger_group():
    """Quantity ledger inspection."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Verify a single product')
@with_appcontext
def verify_ledger(product_id):
    """
    Replay ledger chains and compare with current quantities.

    Exits non-zero on the first broken chain.
    """
    engine = get_engine()
    q = db.session.query(Product).order_by(Product.id.asc())
    if product_id is not None:
        q = q.filter(Product.id == product_id)
    products = q.all()
    if product_id is not None and not products:
        raise click.ClickException(f"Product {product_id} not found")

    total_entries = 0
    for product in products:
        try:
            count = engine.ledger.verify_chain(product.id, current_quantity=product.current_quantity)
        except InvariantViolation as e:
            click.echo(f"FAIL {product.name} (ID: {product.id}): {e.message}")
            raise SystemExit(1)
        total_entries += count
        click.echo(f"PASS {product.name} (ID: {product.id}): {count} entries, quantity {product.current_quantity}")

    click.echo(f"\nDONE Verified {len(products)} product(s), {total_entries} ledger entries")


@click.group('outbox')
def outbox_group():
    """Post-commit message outbox."""


@outbox_group.command('list')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def list_outbox(limit):
    """List pending messages."""
    messages = get_engine().outbox.pending(limit=limit)
    if not messages:
        click.echo("No pending messages.")
        return
    for m in messages:
        error = f" last_error={m.last_error}" if m.last_error else ""
        click.echo(f"{m.id:>6}  {m.topic:<24} attempts={m.attempts}{error}")


@outbox_group.command('dispatch')
@click.option('--limit', type=int, default=None, help='Dispatch at most N messages')
@with_appcontext
def dispatch_outbox(limit):
    """Dispatch pending messages to their handlers."""
    result = get_engine().outbox.dispatch(limit=limit)
    click.echo(f"PASS Processed {result['processed']} message(s)")
    for failure in result["failed"]:
        click.echo(f"FAIL Message {failure['id']}: {failure['error']}")
    if result["failed"]:
        raise SystemExit(1)


@click.group('costs')
def costs_group():
    """Cost maintenance and reporting."""


@costs_group.command('prune-history')
@click.option('--keep', type=int, default=None, help='Rows to keep per product (default: COST_HISTORY_LIMIT)')
@with_appcontext
def prune_history(keep):
    """Delete cost history rows beyond the newest N per product."""
    keep = current_app.config["COST_HISTORY_LIMIT"] if keep is None else keep
    try:
        removed = get_engine().products.prune_cost_history(keep)
    except EngineError as e:
        raise click.ClickException(e.message)
    click.echo(f"Deleted {removed} cost history row(s), keeping {keep} per product.")


@costs_group.command('report')
@click.option('--start', default=None, help='ISO-8601 start (inclusive)')
@click.option('--end', default=None, help='ISO-8601 end (inclusive)')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw report as JSON')
@with_appcontext
def cost_report(start, end, as_json):
    """Print total costs by category and month."""
    try:
        report = get_engine().costs.total_costs(
            start=parse_iso_datetime(start), end=parse_iso_datetime(end, end_of_day=True)
        )
    except ValueError:
        raise click.ClickException("start/end must be ISO-8601 datetimes")
    except EngineError as e:
        raise click.ClickException(e.message)

    if as_json:
        click.echo(json.dumps(report, indent=2))
        return

    click.echo(f"Inventory:   {report['total_inventory_costs']}")
    click.echo(f"Operational: {report['total_operational_costs']}")
    click.echo(f"Overhead:    {report['total_overhead_costs']}")
    click.echo(f"Grand total: {report['grand_total']}")
    if report["monthly_breakdown"]:
        click.echo("\nMonthly:")
        for month in report["monthly_breakdown"]:
            click.echo(f"  {month['label']:<16} {month['total']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(outbox_group)
    app.cli.add_command(costs_group)
