# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/nexo/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent). Use `flask db upgrade` for migrated databases.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed
#   Demo data: one admin, two customers, two products, one service, two sales.
#
# Sale inspection/maintenance:
# - python -m flask sales show 12
#   Print a sale with its lines.
# - python -m flask sales recompute-totals --dry-run
#   Report sales whose stored total differs from the sum of their lines (omit --dry-run to fix).

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .models import Customer, Product, Sale, SaleLine, User
from .models.catalog import KIND_PRODUCT, KIND_SERVICE
from .models.parties import ROLE_ADMIN
from .models.sales import SALE_COMPLETED
from .services import sales_service
from .services.sales_service import SaleError, compute_total


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for demo data.")


@system_group.command('seed')
@with_appcontext
def seed():
    """
    Load demo data.

    Creates (if missing): admin user, two customers, two stock-tracked
    products and one service, then two sales through the sale engine.
    The Completed sale decrements stock like any other.
    """
    click.echo("START Seeding demo data...")

    admin = db.session.query(User).filter_by(email="admin@nexo.local").first()
    if not admin:
        admin = User(name="Administrador", email="admin@nexo.local", role=ROLE_ADMIN)
        db.session.add(admin)
        click.echo("PASS Created user admin@nexo.local")

    customers = []
    for name, email in (("Maria Souza", "maria@example.com"), ("Joao Lima", "joao@example.com")):
        customer = db.session.query(Customer).filter_by(email=email).first()
        if not customer:
            customer = Customer(name=name, email=email)
            db.session.add(customer)
            click.echo(f"PASS Created customer {name}")
        customers.append(customer)

    catalog = []
    for name, price, stock, kind in (
        ("Teclado USB", Decimal("89.90"), 25, KIND_PRODUCT),
        ("Mouse sem fio", Decimal("59.50"), 40, KIND_PRODUCT),
        ("Instalacao de software", Decimal("120.00"), None, KIND_SERVICE),
    ):
        product = db.session.query(Product).filter_by(name=name).first()
        if not product:
            product = Product(name=name, price=price, stock=stock, kind=kind)
            db.session.add(product)
            click.echo(f"PASS Created {kind} {name}")
        catalog.append(product)

    db.session.commit()

    if db.session.query(Sale).count():
        click.echo("SKIP Sales already exist, not creating demo sales.")
        return

    keyboard, mouse, install = catalog
    try:
        completed = sales_service.create_sale(
            customer_id=customers[0].id,
            user_id=admin.id,
            lines=[
                {"product_id": keyboard.id, "quantity": 2},
                {"product_id": install.id, "quantity": 1},
            ],
            status=SALE_COMPLETED,
            notes="Venda de demonstracao",
        )
        pending = sales_service.create_sale(
            customer_id=customers[1].id,
            user_id=admin.id,
            lines=[{"product_id": mouse.id, "quantity": 3}],
        )
    except SaleError as e:
        click.echo(f"FAIL Could not create demo sales: {e} {e.details}")
        return

    click.echo(f"PASS Created sale {completed.id} ({completed.status}, total {completed.total})")
    click.echo(f"PASS Created sale {pending.id} ({pending.status}, total {pending.total})")
    click.echo("PASS Seed complete.")


@click.group('sales')
def sales_group():
    """Sale inspection and maintenance commands."""


@sales_group.command('show')
@click.argument('sale_id', type=int)
@with_appcontext
def show_sale(sale_id):
    """
    Print a sale with its lines.

    Example:
        flask sales show 12
    """
    try:
        sale = sales_service.get_sale(sale_id)
    except SaleError as e:
        click.echo(f"FAIL {e}")
        raise click.exceptions.Exit(1)

    customer = sale.customer.name if sale.customer else sale.customer_id
    click.echo(f"Sale {sale.id} [{sale.status}] customer={customer} occurred_at={sale.occurred_at}")
    for line in sale.lines:
        name = line.product.name if line.product else line.product_id
        click.echo(f"   #{line.id} {name} x{line.quantity} @ {line.unit_price} = {line.line_total}")
    click.echo(f"   Total: {sale.total}")


@sales_group.command('recompute-totals')
@click.option('--dry-run', is_flag=True, help='Only report drift, do not write')
@with_appcontext
def recompute_totals(dry_run):
    """
    Re-derive every sale total from its lines.

    Sales created with an explicit total are reported (and overwritten
    unless --dry-run) like any other drift.
    """
    drifted = 0
    for sale in db.session.query(Sale).order_by(Sale.id.asc()).all():
        lines = db.session.query(SaleLine).filter(SaleLine.sale_id == sale.id).all()
        expected = compute_total(lines)
        if sale.total != expected:
            drifted += 1
            click.echo(f"DRIFT Sale {sale.id}: stored {sale.total}, lines sum {expected}")
            if not dry_run:
                sale.total = expected

    if drifted and not dry_run:
        db.session.commit()
        click.echo(f"PASS Fixed {drifted} sale total(s).")
    elif drifted:
        click.echo(f"WARN {drifted} sale total(s) differ (dry run, nothing written).")
    else:
        click.echo("PASS All sale totals match their lines.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sales_group)
