# Overview: Flask CLI command groups for bootstrap, stock maintenance, and supplier checks.

# backend/duka/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Shop bootstrap:
# - python -m flask shop init-db
#   Create all tables (idempotent). Use `flask db upgrade` for migrated deployments.
# - python -m flask shop seed-demo
#   Insert a few demo products and one supplier if the catalog is empty.
#
# Stock maintenance:
# - python -m flask stock retry-sync [--max-attempts 5]
#   Re-apply stock decrements that failed after a sale was committed.
# - python -m flask stock low
#   List products at or below their reorder level.
#
# Suppliers:
# - python -m flask suppliers reconcile [--supplier-id 3] [--fail-on-drift]
#   Compare stored balances with opening balance + purchases - payments.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, Supplier
from .services import products_service, stock_service, supplier_service


@click.group('shop')
def shop_group():
    """Database bootstrap commands."""


@shop_group.command('init-db')
@with_appcontext
def init_db():
    db.create_all()
    click.echo("PASS Tables created")


DEMO_PRODUCTS = [
    {"name": "Maize Flour 2kg", "category": "Cereals", "unit": "pkt",
     "cost_price": "170.00", "selling_price": "200.00", "on_hand": 40, "reorder_level": 10},
    {"name": "Rice 1kg", "category": "Cereals", "unit": "kg",
     "cost_price": "140.00", "selling_price": "170.00", "on_hand": 25, "reorder_level": 8},
    {"name": "Beans 1kg", "category": "Cereals", "unit": "kg",
     "cost_price": "130.00", "selling_price": "160.00", "on_hand": 6, "reorder_level": 8},
    {"name": "Cooking Oil 1L", "category": "Groceries", "unit": "btl",
     "cost_price": "280.00", "selling_price": "320.00", "on_hand": 12, "reorder_level": 5},
]


@shop_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Insert demo catalog data. Skipped when any product exists."""
    if db.session.query(Product).first():
        click.echo("SKIP Products already exist")
        return

    for data in DEMO_PRODUCTS:
        product = products_service.create_product(patch=dict(data))
        click.echo(f"PASS Created product: {product.name} (ID: {product.id}, on hand: {product.on_hand})")

    if not db.session.query(Supplier).first():
        supplier = supplier_service.create_supplier(name="Nairobi Grain Distributors", phone="0712345678")
        click.echo(f"PASS Created supplier: {supplier.name} (ID: {supplier.id})")


@click.group('stock')
def stock_group():
    """Stock ledger maintenance."""


@stock_group.command('retry-sync')
@click.option('--max-attempts', type=int, default=None,
              help='Attempts before an issue is abandoned (default: STOCK_SYNC_MAX_ATTEMPTS)')
@with_appcontext
def retry_sync(max_attempts):
    """
    Retry stock decrements queued by partially synced sales.

    Issues whose product was deleted are abandoned at once; issues that are
    still short of stock stay pending until max attempts is reached.
    """
    if max_attempts is None:
        max_attempts = current_app.config["STOCK_SYNC_MAX_ATTEMPTS"]
    result = stock_service.retry_pending_stock_sync(max_attempts=max_attempts)
    click.echo(
        f"Resolved {result['resolved']}, still pending {result['pending']}, "
        f"abandoned {result['abandoned']}"
    )


@stock_group.command('low')
@with_appcontext
def low_stock():
    products = stock_service.list_low_stock()
    if not products:
        click.echo("No products at or below reorder level.")
        return
    for p in products:
        click.echo(f"{p.id:>5}  {p.name:<30} on hand {p.on_hand:>5}  reorder at {p.reorder_level}")


@click.group('suppliers')
def suppliers_group():
    """Supplier debt ledger checks."""


@suppliers_group.command('reconcile')
@click.option('--supplier-id', type=int, default=None, help='Check a single supplier')
@click.option('--fail-on-drift', is_flag=True, help='Exit with status 1 when any balance drifts')
@with_appcontext
def reconcile(supplier_id, fail_on_drift):
    """Compare each stored balance with the sum of its history."""
    if supplier_id is not None:
        supplier_ids = [supplier_id]
    else:
        supplier_ids = [s.id for s in supplier_service.list_suppliers()]

    drifted = 0
    for sid in supplier_ids:
        report = supplier_service.reconcile_supplier_balance(sid)
        if report["in_sync"]:
            click.echo(f"PASS Supplier {sid}: balance {report['stored_balance']}")
        else:
            drifted += 1
            click.echo(
                f"FAIL Supplier {sid}: stored {report['stored_balance']}, "
                f"expected {report['expected_balance']} (drift {report['drift']})"
            )

    if drifted and fail_on_drift:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(shop_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(suppliers_group)
