# Overview: Flask CLI command groups for database bootstrap and data maintenance.

# backend/paneteria/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Data:
# - python -m flask data seed-demo
#   Create demo categories, products, customers and orders (skips if data exists).
# - python -m flask data refresh
#   Load a full snapshot and print counts and the refresh error, if any.
# - python -m flask data recompute-totals
#   Recompute every customer's order aggregates and every product's total_sold.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db, get_gateway
from .models import ProductCategory
from .services.sync_service import DashboardStore


def _cli_store() -> DashboardStore:
    store = DashboardStore(get_gateway(), logger=current_app.logger, realtime=False)
    store.open_session("cli")
    return store


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("OK Database reset complete")


@click.group('data')
def data_group():
    """Demo data and aggregate maintenance."""


DEMO_CATEGORIES = [
    {"name": "Breads", "description": "Naturally leavened loaves"},
    {"name": "Panettones", "description": "Seasonal sweet breads"},
    {"name": "Pastries", "description": "Butter pastries and cakes"},
]

DEMO_PRODUCTS = [
    ("Breads", {"name": "Sourdough", "price": "20.00", "weight": "0.800"}),
    ("Breads", {"name": "Focaccia", "price": "28.00", "weight": "0.600"}),
    ("Panettones", {"name": "Classic Panettone", "price": "89.90", "weight": "1.000", "custom_packaging": True}),
    ("Panettones", {"name": "Chocolate Panettone", "price": "99.90", "weight": "1.000", "custom_packaging": True}),
    ("Pastries", {"name": "Croissant", "price": "9.50"}),
]

DEMO_CUSTOMERS = [
    {"name": "Ana", "whatsapp": "+55 11 91234-5678", "address": "Rua das Flores, 10"},
    {"name": "Bruno", "whatsapp": "+55 11 99876-5432", "delivery_preferences": "Afternoon"},
]


@data_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create a small demo catalog with a couple of orders."""
    if db.session.query(ProductCategory).count() > 0:
        click.echo("SKIP Data already present; run 'system reset-db --yes' first")
        return

    store = _cli_store()

    categories = {c["name"]: store.add_category(c) for c in DEMO_CATEGORIES}
    click.echo(f"OK Created {len(categories)} categories")

    products = {}
    for category_name, data in DEMO_PRODUCTS:
        product = store.add_product({**data, "category_id": categories[category_name].id})
        products[product.name] = product
    click.echo(f"OK Created {len(products)} products")

    customers = {c["name"]: store.add_customer(c) for c in DEMO_CUSTOMERS}
    click.echo(f"OK Created {len(customers)} customers")

    first = store.add_order({
        "customer_id": customers["Ana"].id,
        "delivery_fee": "5.00",
        "delivery_method": "delivery",
        "sales_channel": "whatsapp",
        "items": [{"product_id": products["Sourdough"].id, "quantity": 2}],
    })
    store.update_order(first.id, {"status": "delivered", "payment_status": "paid"})

    store.add_order({
        "customer_id": customers["Bruno"].id,
        "payment_method": "pix",
        "items": [
            {"product_id": products["Classic Panettone"].id, "quantity": 1},
            {"product_id": products["Croissant"].id, "quantity": 4, "item_discount": "0.50"},
        ],
    })
    click.echo("OK Created 2 orders")

    store.close_session()


@data_group.command('refresh')
@with_appcontext
def refresh():
    """Load a full snapshot and print what it holds."""
    store = _cli_store()
    snapshot = store.snapshot

    click.echo(f"Categories: {len(snapshot.categories)}")
    click.echo(f"Products:   {len(snapshot.products)}")
    click.echo(f"Customers:  {len(snapshot.customers)}")
    click.echo(f"Orders:     {len(snapshot.orders)}")
    if snapshot.most_sold_category:
        click.echo(f"Most sold category: {snapshot.most_sold_category.name}")

    if store.error:
        click.echo(f"ERROR {store.error}", err=True)
        raise SystemExit(1)


@data_group.command('recompute-totals')
@with_appcontext
def recompute_totals():
    """Rewrite every customer's order aggregates and every product's total_sold."""
    store = _cli_store()

    failed = 0
    for customer in store.snapshot.customers:
        if store.update_customer_totals(customer.id) is None:
            failed += 1
    click.echo(f"OK Customers recomputed: {len(store.snapshot.customers) - failed}")

    sales = store.update_product_sales()
    if sales is None:
        failed += 1
    else:
        click.echo(f"OK Products recomputed: {len(sales)}")

    if failed:
        click.echo(f"WARN {failed} recomputation(s) failed; see log", err=True)
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(data_group)
