# Overview: Flask CLI command groups for bootstrap and inventory inspection.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--tax-percent 18] [--invoice-prefix INV]
#   Idempotent bootstrap: creates tables and the shop settings row.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory inspection:
# - python -m flask inventory summary
#   Print SKU count, units on hand, cost and retail value, low/out-of-stock counts.
# - python -m flask inventory low-stock [--threshold 5]
#   List active variants at or below the threshold (default: shop setting).

import click
from flask.cli import with_appcontext

from .errors import ValidationError
from .extensions import db
from .services import inventory_service, settings_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--tax-percent', type=str, default=None, help='Shop tax rate in percent, e.g. 18')
@click.option('--invoice-prefix', type=str, default=None, help='Bill number prefix, e.g. INV')
@with_appcontext
def init_system(tax_percent, invoice_prefix):
    """
    Initialize the database and the shop settings row.

    Safe to run repeatedly; existing data is left alone and only the options
    given are applied.
    """
    click.echo("START Initializing retail POS...")

    db.create_all()
    settings = settings_service.get_settings()
    db.session.commit()
    click.echo(f"PASS Shop settings ready: {settings.shop_name}")

    updates = {}
    if tax_percent is not None:
        updates["tax_percent"] = tax_percent
    if invoice_prefix is not None:
        updates["invoice_prefix"] = invoice_prefix
    if updates:
        try:
            settings = settings_service.update_settings(**updates)
        except ValidationError as e:
            db.session.rollback()
            click.echo(f"FAIL Settings not updated: {e.message}")
            return
        click.echo(f"PASS Updated settings: {', '.join(sorted(updates))}")

    click.echo(
        f"DONE tax_percent={settings.tax_percent} invoice_prefix={settings.invoice_prefix} "
        f"last_bill_number={settings.last_bill_number}"
    )


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

    settings_service.get_settings()
    db.session.commit()
    click.echo("DONE Database reset complete.")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('summary')
@with_appcontext
def inventory_summary():
    """Print inventory totals over active variants."""
    summary = inventory_service.get_inventory_summary()
    click.echo(f"SKUs:           {summary['total_skus']}")
    click.echo(f"Units on hand:  {summary['total_items']}")
    click.echo(f"Cost value:     {summary['total_cost_value']}")
    click.echo(f"Retail value:   {summary['total_retail_value']}")
    click.echo(f"Low stock:      {summary['low_stock_count']} (threshold {summary['low_stock_threshold']})")
    click.echo(f"Out of stock:   {summary['out_of_stock_count']}")


@inventory_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Override the shop low-stock threshold')
@with_appcontext
def low_stock(threshold):
    """List active variants that are running low."""
    items = inventory_service.list_low_stock(threshold)
    if not items:
        click.echo("No low-stock variants.")
        return

    click.echo(f"{'SKU':<20} {'Product':<30} {'Size':<8} {'Color':<10} {'Qty':>5}")
    click.echo("-" * 77)
    for item in items:
        click.echo(
            f"{item['sku']:<20} {(item['product_name'] or '')[:30]:<30} "
            f"{item['size'] or '-':<8} {item['color'] or '-':<10} {item['stock_qty']:>5}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
