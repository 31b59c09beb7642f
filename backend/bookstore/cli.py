# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/bookstore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-username admin --admin-email admin@bookstore.local]
#   Idempotent bootstrap: creates tables and the default admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--role manager]
# - python -m flask users create --username alice --email alice@example.com --password "Secret123" --role manager
#
# Inventory:
# - python -m flask inventory check
#   Compare cached stock counters against the ledger; exits 1 on drift.
#
# Maintenance:
# - python -m flask auth cleanup-pending
#   Delete pending registrations whose OTP expired.

import os

import click
from flask.cli import with_appcontext

from .enums import UserRole
from .errors import AppError
from .extensions import db
from .models import User
from .services import auth_service, inventory_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default=lambda: os.environ.get("ADMIN_USERNAME", "admin"), show_default="admin")
@click.option('--admin-email', default=lambda: os.environ.get("ADMIN_EMAIL", "admin@bookstore.local"),
              show_default="admin@bookstore.local")
@click.option('--admin-password', default=lambda: os.environ.get("ADMIN_PASSWORD", "Password123"),
              show_default="Password123")
@with_appcontext
def init_system(admin_username, admin_email, admin_password):
    """
    Create all tables and a default admin account.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing bookstore...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
        return

    try:
        user = auth_service.create_user(
            username=admin_username,
            email=admin_email,
            password=admin_password,
            role=UserRole.ADMIN,
        )
    except AppError as e:
        raise click.ClickException(f"Failed to create admin '{admin_username}': {e.message}") from e

    click.echo(f"PASS Created admin: {user.username} ({user.email})")


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


@users_group.command('list')
@click.option('--role', type=click.Choice(UserRole.values()), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {user.role}")
    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(UserRole.values()), default=UserRole.CUSTOMER.value, show_default=True)
@with_appcontext
def create_user_cli(username, email, password, role):
    """Create an active user without OTP verification."""
    try:
        user = auth_service.create_user(username=username, email=email, password=password, role=role)
    except AppError as e:
        raise click.ClickException(e.message) from e
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@click.group('inventory')
def inventory_group():
    """Inventory ledger inspection commands."""


@inventory_group.command('check')
@with_appcontext
def check_inventory():
    """Compare cached stock counters against the inventory ledger."""
    drift = inventory_service.check_stock_consistency()
    if not drift:
        click.echo("PASS Stock counters match the ledger.")
        return

    click.echo(f"FAIL {len(drift)} product(s) drifted from the ledger:")
    for row in drift:
        click.echo(
            f"  product {row['product_id']} ({row['sku']}): "
            f"cached={row['stock_quantity']} ledger={row['ledger_stock']}"
        )
    raise SystemExit(1)


@click.group('auth')
def auth_group():
    """Authentication maintenance commands."""


@auth_group.command('cleanup-pending')
@with_appcontext
def cleanup_pending_cli():
    """Delete pending registrations whose OTP has expired."""
    deleted = auth_service.cleanup_expired_pending_users()
    click.echo(f"Deleted {deleted} expired pending registrations.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(auth_group)
