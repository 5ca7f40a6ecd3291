# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--with-samples]
#   Idempotent bootstrap: creates tables, default admin and cashier users, optional sample catalog.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --name "Jane" --email jane@pos.local --role cashier
#   Create an operator (prompts if options are omitted).
# - python -m flask users deactivate jane@pos.local
#
# Ledger:
# - python -m flask ledger insights --period weekly
#   Print the insights summary for a period.
# - python -m flask ledger purge --days 7 --yes
#   Delete completed sales from the last N days (max 30). Stock is not restored.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, User
from .models.auth import ROLES, ROLE_ADMIN, ROLE_CASHIER
from .services.errors import RangeExceeded
from .services.insights_service import InsightsAggregator, PERIODS
from .services.retention_service import LedgerRetention
from .services.repositories import UserStore
from .services.transaction_service import TransactionEngine
from .validation import ValidationError


SAMPLE_PRODUCTS = [
    {"name": "Laptop", "description": "High-performance laptop", "price_cents": 99999,
     "cost_cents": 70000, "stock": 15, "category": "Electronics", "barcode": "1234567890123"},
    {"name": "Wireless Mouse", "description": "Ergonomic wireless mouse", "price_cents": 2999,
     "cost_cents": 1500, "stock": 50, "category": "Electronics", "barcode": "1234567890124"},
    {"name": "Keyboard", "description": "Mechanical keyboard", "price_cents": 7999,
     "cost_cents": 4500, "stock": 30, "category": "Electronics", "barcode": "1234567890125"},
    {"name": "Monitor", "description": "24-inch LED monitor", "price_cents": 19999,
     "cost_cents": 15000, "stock": 20, "category": "Electronics", "barcode": "1234567890126"},
]

DEFAULT_USERS = [
    {"name": "Admin User", "email": "admin@pos.local", "role": ROLE_ADMIN},
    {"name": "Cashier User", "email": "cashier@pos.local", "role": ROLE_CASHIER},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--with-samples', is_flag=True, help='Seed the sample catalog')
@with_appcontext
def init_system(with_samples):
    """
    Initialize the POS ledger: schema, default operators, optional samples.

    Safe to run repeatedly; existing users and barcodes are left untouched.
    """
    click.echo("START Initializing POS ledger...")
    db.create_all()

    users = UserStore(db.session)
    admin = None
    for entry in DEFAULT_USERS:
        user = users.find_by_email(entry["email"])
        if user is None:
            user = User(**entry)
            db.session.add(user)
            db.session.commit()
            click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")
        else:
            click.echo(f"SKIP User {user.email} exists (ID: {user.id})")
        if user.role == ROLE_ADMIN and admin is None:
            admin = user

    if with_samples:
        engine = TransactionEngine(db.session)
        for entry in SAMPLE_PRODUCTS:
            if engine.products.find_by_barcode(entry["barcode"]) is not None:
                click.echo(f"SKIP Product {entry['name']} exists")
                continue
            fields = {k: v for k, v in entry.items() if k != "stock"}
            engine.stock_new_product(Product(**fields), entry["stock"], user_id=admin.id if admin else None)
            db.session.commit()
            click.echo(f"PASS Created product {entry['name']} (stock {entry['stock']})")

    click.echo("DONE Initialization complete")


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


@click.group('users')
def users_group():
    """Operator inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users():
    rows = db.session.query(User).order_by(User.id.asc()).all()
    if not rows:
        click.echo("No users found")
        return
    for user in rows:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<8} {status}  {user.name}")


@users_group.command('create')
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--role', type=click.Choice(ROLES), default=ROLE_CASHIER, show_default=True)
@with_appcontext
def create_user(name, email, role):
    if UserStore(db.session).find_by_email(email) is not None:
        raise click.ClickException(f"User {email} already exists")
    user = User(name=name, email=email, role=role)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('deactivate')
@click.argument('email')
@with_appcontext
def deactivate_user(email):
    user = UserStore(db.session).find_by_email(email)
    if user is None:
        raise click.ClickException(f"User {email} not found")
    user.is_active = False
    db.session.commit()
    click.echo(f"PASS Deactivated {email}")


@click.group('ledger')
def ledger_group():
    """Sale ledger reports and maintenance."""


@ledger_group.command('insights')
@click.option('--period', type=click.Choice(PERIODS), default="daily", show_default=True)
@with_appcontext
def print_insights(period):
    report = InsightsAggregator.from_config(db.session, current_app.config).compute(period)
    summary = report["summary"]
    click.echo(f"Period: {period} ({report['date_range']['start']} .. {report['date_range']['end']})")
    click.echo(f"Sales:   {summary['total_sales']}")
    click.echo(f"Revenue: {summary['total_revenue_cents'] / 100:,.2f}")
    click.echo(f"Cost:    {summary['total_cost_cents'] / 100:,.2f}")
    click.echo(f"Profit:  {summary['total_profit_cents'] / 100:,.2f} ({summary['profit_margin']}%)")
    for entry in report["top_products"]:
        click.echo(f"  {entry['quantity']:>5} x {entry['name']}")


@ledger_group.command('purge')
@click.option('--days', type=int, default=1, show_default=True)
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def purge_sales(days, yes):
    """Delete completed sales from the last N days. Stock is NOT restored."""
    if not yes:
        click.confirm(f"WARN Delete completed sales from the last {days} day(s)?", abort=True)
    try:
        deleted = LedgerRetention.from_config(db.session, current_app.config).purge_recent_sales(days)
    except (RangeExceeded, ValidationError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"PASS Deleted {deleted} sales")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
