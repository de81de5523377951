# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to shopledger (PowerShell: $env:FLASK_APP="shopledger").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask shop init-db
#   Create any missing tables (idempotent).
# - python -m flask shop reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask shop low-stock --shop-id shop-1
#   List items at or below their low-stock alert.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import ValidationError
from .services import stock_service


@click.group('shop')
def shop_group():
    """Shop ledger bootstrap and inspection commands."""


@shop_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@shop_group.command('reset-db')
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


@shop_group.command('low-stock')
@click.option('--shop-id', required=True, help='Shop to inspect')
@with_appcontext
def low_stock(shop_id):
    """List items at or below their low-stock alert."""
    try:
        items = stock_service.list_low_stock(shop_id)
    except ValidationError as e:
        raise click.ClickException(str(e))

    if not items:
        click.echo("PASS No items below their alert level.")
        return

    click.echo(f"WARN {len(items)} item(s) low on stock:")
    for item in items:
        click.echo(
            f"  [{item.id}] {item.name}: {item.quantity} {item.quantity_unit} "
            f"(alert at {item.low_stock_alert})"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(shop_group)
