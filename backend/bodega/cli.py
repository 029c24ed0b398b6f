# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/bodega/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-username admin --admin-password "Password123!"]
#   Idempotent bootstrap: creates tables and the default admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username op1 --password "Password123!" --role warehouse_operator --cost-center CC001
#   Create a user (prompts if options are omitted).
#
# Cost centers:
# - python -m flask cost-centers bootstrap CC001 [--location "Santiago"]
#   Provision the main warehouse and its four sub-warehouses.
#
# Inventory:
# - python -m flask inventory low-stock
#   List (product, warehouse) pairs at or below min_stock.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, USER_ROLES
from .services import auth_service, inventory_service, warehouse_service
from .services.auth_service import PasswordValidationError
from .validation import ConflictError, ValidationError

DEFAULT_ADMIN_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Username of the default admin')
@click.option('--admin-password', default=DEFAULT_ADMIN_PASSWORD, help='Password of the default admin')
@with_appcontext
def init_system(admin_username, admin_password):
    """
    Create all tables and the default admin user.

    Safe to run repeatedly: an existing admin is left untouched.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing Bodega...")

    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
        return

    try:
        auth_service.create_user(
            password=admin_password,
            patch={"username": admin_username, "role": "admin"},
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed for '{admin_username}': {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created admin user: {admin_username}")
    if admin_password == DEFAULT_ADMIN_PASSWORD:
        click.echo("\nSECURITY WARNING: the default password is in use; change it now.")


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
@with_appcontext
def list_users():
    """List all users with their role."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<20} {'Cost center':<15} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.role:<20} {user.cost_center or '-':<15} {active_str}")

    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), prompt=True, help='Role')
@click.option('--cost-center', default=None, help='Cost center of the user')
@with_appcontext
def create_user_cli(username, password, role, cost_center):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = auth_service.create_user(
            password=password,
            patch={"username": username, "role": role, "cost_center": cost_center},
        )
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


@click.group('cost-centers')
def cost_centers_group():
    """Cost center provisioning."""


@cost_centers_group.command('bootstrap')
@click.argument('code')
@click.option('--location', default=None, help='Location shared by the five warehouses')
@with_appcontext
def bootstrap_cost_center(code, location):
    """Create the main warehouse of CODE and its four sub-warehouses (idempotent)."""
    try:
        main, created = warehouse_service.ensure_principal_warehouse(code, location=location)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    if not created:
        click.echo(f"WARN  Cost center '{main.cost_center}' already exists (main warehouse ID: {main.id})")
        return

    click.echo(f"PASS Created {main.name} (ID: {main.id})")
    for sub in main.sub_warehouses:
        click.echo(f"     {sub.name} (ID: {sub.id}, type: {sub.sub_warehouse_type})")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    """List (product, warehouse) pairs at or below the product's min_stock."""
    rows = inventory_service.low_stock_items()

    if not rows:
        click.echo("No low stock items.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'SKU':<15} {'Product':<30} {'Warehouse':<30} {'Qty':>5} {'Min':>5}")
    click.echo("="*90)
    for row in rows:
        click.echo(
            f"{row.product.sku:<15} {row.product.name[:30]:<30} {row.warehouse.name[:30]:<30} "
            f"{row.quantity:>5} {row.product.min_stock:>5}"
        )
    click.echo("="*90 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(cost_centers_group)
    app.cli.add_command(inventory_group)
