# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent: create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create demo locations, a vendor, products, one applied receipt and one invoice.
#
# Maintenance:
# - python -m flask maintenance purge-move-history --retention-days 365
#   Delete move history entries older than the retention window.
# - python -m flask maintenance mark-overdue
#   Move SENT/PARTIAL invoices past their due date to OVERDUE.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .errors import LedgerError
from .models import Product, Location
from .services import catalog_service, document_service, invoice_service, maintenance_service
from .time_utils import utcnow


# Acting user id recorded on documents created from the CLI
SYSTEM_USER_ID = 1


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    click.echo("START Initializing StockLedger schema...")
    db.create_all()
    click.echo("PASS Schema ready")


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

    click.echo("PASS Database reset complete")


@system_group.command('seed-demo')
@click.option('--user-id', type=int, default=SYSTEM_USER_ID, show_default=True,
              help='Acting user id recorded on seeded documents')
@with_appcontext
def seed_demo(user_id):
    """
    Seed a small demo dataset.

    Skips seeding when any location already exists.
    """
    if db.session.query(Location).first() is not None:
        click.echo("SKIP Locations already exist; demo data not seeded")
        return

    try:
        main = catalog_service.create_location(code="WH-MAIN", name="Main Warehouse")
        overflow = catalog_service.create_location(code="WH-OVERFLOW", name="Overflow Warehouse")
        vendor = catalog_service.create_vendor(name="Demo Supplies", email="orders@demo.local")

        widget = catalog_service.create_product(sku="WIDGET", name="Widget", price_cents=1250, min_stock=10)
        gadget = catalog_service.create_product(sku="GADGET", name="Gadget", price_cents=4999, min_stock=2)

        receipt = document_service.create_receipt(
            vendor_id=vendor.id,
            location_id=main.id,
            lines=[
                {"product_id": widget.id, "quantity": 50},
                {"product_id": gadget.id, "quantity": 5},
            ],
            acting_user_id=user_id,
            notes="Demo opening stock",
        )
        document_service.apply_document("receipt", receipt.id, acting_user_id=user_id)

        transfer = document_service.create_transfer(
            from_location_id=main.id,
            to_location_id=overflow.id,
            lines=[{"product_id": widget.id, "quantity": 10}],
            acting_user_id=user_id,
        )
        document_service.apply_document("transfer", transfer.id, acting_user_id=user_id)

        invoice = invoice_service.create_invoice(
            customer_name="Demo Customer",
            lines=[{"product_id": widget.id, "quantity": 4}],
            acting_user_id=user_id,
            tax_rate_bps=825,
            due_date=utcnow() + timedelta(days=30),
        )
    except LedgerError as e:
        raise click.ClickException(f"Seeding failed: {e.message}")

    click.echo(f"PASS Locations: {main.code}, {overflow.code}")
    click.echo(f"PASS Products: {db.session.query(Product).count()}")
    click.echo(f"PASS Applied {receipt.document_number} and {transfer.document_number}")
    click.echo(f"PASS Draft invoice {invoice.invoice_number} ({invoice.total_cents} cents)")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('purge-move-history')
@click.option('--retention-days', type=int, default=None,
              help='Defaults to MOVE_HISTORY_RETENTION_DAYS')
@with_appcontext
def purge_move_history_cli(retention_days):
    """
    Purge old move history entries.

    Stock levels are not affected.
    """
    try:
        deleted = maintenance_service.purge_move_history(retention_days=retention_days)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"Deleted {deleted} move history entries.")


@maintenance_group.command('mark-overdue')
@with_appcontext
def mark_overdue_cli():
    """Mark unpaid invoices past their due date as OVERDUE."""
    count = maintenance_service.mark_overdue()
    click.echo(f"Marked {count} invoices overdue.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(maintenance_group)
