# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/smartstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-password "Password123!"]
#   Idempotent bootstrap: creates tables, a default warehouse and the admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username alice --full-name "Alice" --password "Password123!" --role MANAGER
#   Create a user (prompts if options are omitted).
#
# Stock consistency:
# - python -m flask stock verify
#   Fold the movement ledger and compare with stored positions; exit 1 on drift.
# - python -m flask stock rebuild --yes
#   Rewrite positions from the ledger and re-evaluate alerts.

import sys

import click
from flask.cli import with_appcontext

from .errors import InventoryError
from .extensions import db
from .models import ROLES, Product, User, Warehouse
from .services import alert_service, auth_service, ledger_service
from .services.concurrency import transaction


DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default=DEFAULT_ADMIN_USERNAME, show_default=True)
@click.option('--admin-password', default=DEFAULT_ADMIN_PASSWORD, help='Password for a newly created admin')
@click.option('--warehouse', 'warehouse_name', default='Main Warehouse', show_default=True)
@with_appcontext
def init_system(admin_username, admin_password, warehouse_name):
    """
    Initialize the schema, a default warehouse and an ADMIN user.

    Existing rows are left alone, so running it twice is safe.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing SmartStock...")

    db.create_all()
    click.echo("PASS Schema ready")

    with transaction():
        warehouse = (
            db.session.query(Warehouse)
            .filter(db.func.lower(Warehouse.name) == warehouse_name.lower())
            .first()
        )
        if warehouse is None:
            warehouse = Warehouse(name=warehouse_name, is_active=True)
            db.session.add(warehouse)
            click.echo(f"PASS Created warehouse: {warehouse_name}")
        else:
            click.echo(f"PASS Using existing warehouse: {warehouse.name} (ID: {warehouse.id})")

    existing = (
        db.session.query(User)
        .filter(db.func.lower(User.username) == admin_username.lower())
        .first()
    )
    if existing is not None:
        click.echo(f"PASS Using existing user: {existing.username} ({existing.role})")
    else:
        try:
            with transaction():
                user = auth_service.create_user(
                    username=admin_username,
                    password=admin_password,
                    full_name="Administrator",
                    role="ADMIN",
                )
        except InventoryError as e:
            raise click.ClickException(f"Failed to create admin: {e.message}")
        click.echo(f"PASS Created user: {user.username} (ADMIN)")
        if admin_password == DEFAULT_ADMIN_PASSWORD:
            click.echo("WARN Default password in use; change it before going live")

    click.echo("DONE SmartStock initialized")


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
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--full-name', prompt=True, help='Display name')
@click.option('--email', default=None, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES, case_sensitive=False), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, full_name, email, password, role):
    """
    Create a new user.

    Password must be at least 8 characters. Usernames are unique
    regardless of case.
    """
    try:
        with transaction():
            user = auth_service.create_user(
                username=username,
                password=password,
                full_name=full_name,
                role=role,
                email=email,
            )
    except InventoryError as e:
        raise click.ClickException(f"Failed to create user: {e.message}")

    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Full name':<30} {'Role':<10} {'Active'}")
    click.echo("=" * 80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.full_name:<30} {user.role:<10} {active_str}")

    click.echo("=" * 80 + "\n")


@click.group('stock')
def stock_group():
    """Ledger/position consistency commands."""


@stock_group.command('verify')
@with_appcontext
def verify_stock_cli():
    """
    Compare stored positions with the ledger fold.

    Exits with status 1 when any position has drifted.
    """
    mismatches = ledger_service.verify_positions()
    if not mismatches:
        click.echo("PASS Positions match the ledger")
        return

    click.echo(f"FAIL {len(mismatches)} position(s) disagree with the ledger:")
    for m in mismatches:
        click.echo(
            f"  product={m['product_id']} warehouse={m['warehouse_id']} "
            f"ledger={m['ledger_on_hand']} stored={m['position_on_hand']}"
        )
    sys.exit(1)


@stock_group.command('rebuild')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def rebuild_stock_cli(yes):
    """
    Rewrite every position from the ledger, then re-evaluate alerts for
    all products.
    """
    if not yes:
        click.confirm("WARN Positions will be overwritten from the ledger. Continue?", abort=True)

    with transaction():
        changed = ledger_service.rebuild_positions()
        product_ids = [pid for (pid,) in db.session.query(Product.id).all()]
        alert_service.evaluate_products(product_ids)

    click.echo(f"PASS Rebuilt {changed} position(s); alerts re-evaluated for {len(product_ids)} product(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
