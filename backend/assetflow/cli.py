# Overview: Flask CLI command groups for bootstrap, inspection, and scheduled maintenance.

# backend/assetflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--unit "Head Office" --unit-code HO]
#   Idempotent bootstrap: creates tables, a default unit, and one user per role.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Units and users:
# - python -m flask units list
# - python -m flask units create --name "Finance" --code FIN
# - python -m flask users list [--unit-id 1]
# - python -m flask users create --username budi --role "Admin Unit" --unit-id 2 [--full-name "Budi S"]
#
# Scheduled jobs:
# - python -m flask loans overdue [--as-of 2026-01-31]
#   List approved loans past their expected return date.
# - python -m flask requests mark-overdue [--as-of 2026-01-31]
#   Flag ACTIVE inter-unit requests past their expected return date as OVERDUE.
#
# Audits:
# - python -m flask audits summary 12
#   Print found/missing/misplaced counts for one audit.
#
# Movements:
# - python -m flask movements pending [--to-unit-id 3]
#   List asset movements waiting for the receiving unit.

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .errors import WorkflowError
from .extensions import db
from .models import Role, Unit, User
from .services import audit_service, loan_service, movement_service, request_service


DEFAULT_USERS = [
    ("superadmin", "Super Administrator", Role.SUPER_ADMIN, False),
    ("holding", "Holding Administrator", Role.ADMIN_HOLDING, False),
    ("auditor", "Internal Auditor", Role.AUDITOR, False),
    ("unitadmin", "Unit Administrator", Role.ADMIN_UNIT, True),
    ("staff", "Unit Staff", Role.USER, True),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--unit', 'unit_name', default='Head Office', help='Default unit name')
@click.option('--unit-code', default='HO', help='Default unit code')
@with_appcontext
def init_system(unit_name, unit_code):
    """
    Initialize AssetFlow: schema, a default unit, and one user per role.

    Creates:
    - All tables (if missing)
    - Default unit
    - Users: superadmin, holding, auditor (no unit); unitadmin, staff (default unit)
    """
    click.echo("START Initializing AssetFlow...")
    db.create_all()

    unit = db.session.query(Unit).filter_by(name=unit_name).first()
    if not unit:
        unit = Unit(name=unit_name, code=unit_code, is_active=True)
        db.session.add(unit)
        db.session.commit()
        click.echo(f"PASS Created default unit: {unit.name} (ID: {unit.id}, Code: {unit.code})")
    else:
        click.echo(f"PASS Using existing unit: {unit.name} (ID: {unit.id})")

    click.echo("\nUSERS Creating default users...")
    for username, full_name, role, unit_scoped in DEFAULT_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        user = User(
            username=username,
            full_name=full_name,
            role=role,
            unit_id=unit.id if unit_scoped else None,
            is_active=True,
        )
        db.session.add(user)
        db.session.commit()
        click.echo(f"PASS Created user: {username} with role '{role.value}'")

    click.echo("DONE AssetFlow initialized.")


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


@click.group('units')
def units_group():
    """Unit management commands."""


@units_group.command('list')
@with_appcontext
def list_units():
    """List all units."""
    units = db.session.query(Unit).order_by(Unit.id.asc()).all()
    if not units:
        click.echo("No units found.")
        return

    click.echo(f"{'ID':<5} {'Code':<10} {'Name':<40} {'Active'}")
    for unit in units:
        click.echo(f"{unit.id:<5} {unit.code or '-':<10} {unit.name:<40} {'Yes' if unit.is_active else 'No'}")


@units_group.command('create')
@click.option('--name', required=True, help='Unit name')
@click.option('--code', default=None, help='Short unit code')
@with_appcontext
def create_unit(name, code):
    """Create a unit."""
    unit = Unit(name=name.strip(), code=code.strip() if code else None, is_active=True)
    db.session.add(unit)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"Unit '{name}' already exists")
    click.echo(f"PASS Created unit: {unit.name} (ID: {unit.id})")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('list')
@click.option('--unit-id', type=int, help='Filter by unit ID')
@with_appcontext
def list_users(unit_id):
    """List all users with their roles."""
    query = db.session.query(User)
    if unit_id:
        query = query.filter_by(unit_id=unit_id)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<15} {'Unit':<6} {'Active'}")
    for user in users:
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.role.value:<15} "
            f"{user.unit_id if user.unit_id is not None else '-':<6} {'Yes' if user.is_active else 'No'}"
        )


@users_group.command('create')
@click.option('--username', required=True)
@click.option('--role', 'role_name', required=True, type=click.Choice([r.value for r in Role]))
@click.option('--unit-id', type=int, default=None, help='Unit (required for Admin Unit and User)')
@click.option('--full-name', default=None)
@with_appcontext
def create_user(username, role_name, unit_id, full_name):
    """Create a user."""
    role = Role(role_name)
    if role in (Role.ADMIN_UNIT, Role.USER) and unit_id is None:
        raise click.ClickException(f"--unit-id is required for role '{role.value}'")
    if unit_id is not None and not db.session.get(Unit, unit_id):
        raise click.ClickException(f"Unit {unit_id} not found")

    user = User(username=username.strip(), full_name=full_name, role=role, unit_id=unit_id, is_active=True)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"User '{username}' already exists")
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{role.value}'")


@click.group('loans')
def loans_group():
    """Asset loan inspection commands."""


@loans_group.command('overdue')
@click.option('--as-of', default=None, help='ISO date (default: today)')
@with_appcontext
def overdue_loans(as_of):
    """List approved loans past their expected return date."""
    try:
        loans = loan_service.list_overdue_loans(as_of)
    except WorkflowError as e:
        raise click.ClickException(e.message)

    if not loans:
        click.echo("No overdue loans.")
        return

    click.echo(f"{'Loan':<6} {'Asset':<8} {'Borrower':<9} {'Expected return'}")
    for loan in loans:
        click.echo(f"{loan.id:<6} {loan.asset_id:<8} {loan.borrower_id:<9} {loan.expected_return_date.isoformat()}")
    click.echo(f"TOTAL {len(loans)} overdue loan(s)")


@click.group('requests')
def requests_group():
    """Inter-unit request maintenance commands."""


@requests_group.command('mark-overdue')
@click.option('--as-of', default=None, help='ISO date (default: today)')
@with_appcontext
def mark_overdue(as_of):
    """Flag ACTIVE requests past their expected return date as OVERDUE."""
    try:
        flagged = request_service.mark_overdue_requests(as_of)
    except WorkflowError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Marked {len(flagged)} request(s) overdue")
    for request_id in flagged:
        click.echo(f"  - request {request_id}")


@click.group('audits')
def audits_group():
    """Inventory audit inspection commands."""


@audits_group.command('summary')
@click.argument('audit_id', type=int)
@with_appcontext
def audit_summary(audit_id):
    """Print the reconciliation result of one audit."""
    try:
        summary = audit_service.get_audit_summary(audit_id)
    except WorkflowError as e:
        raise click.ClickException(e.message)

    click.echo(f"Audit {summary['audit_code']} (unit {summary['unit_id']}) - {summary['status']}")
    click.echo(f"  expected:  {summary['expected_count']}")
    click.echo(f"  found:     {summary['found_count']}")
    click.echo(f"  missing:   {summary['missing_count']} {summary['missing_asset_ids']}")
    click.echo(f"  misplaced: {summary['misplaced_count']}")
    for item in summary['misplaced_assets']:
        click.echo(f"    - asset {item['asset_id']} belongs to {item['actual_unit_name']}")
    click.echo(f"  completion: {summary['completion_percentage']}%")


@click.group('movements')
def movements_group():
    """Asset movement inspection commands."""


@movements_group.command('pending')
@click.option('--to-unit-id', type=int, default=None, help='Receiving unit (default: all)')
@with_appcontext
def pending_movements(to_unit_id):
    """List movements waiting for validation, oldest first."""
    movements = movement_service.list_pending_movements(to_unit_id)
    if not movements:
        click.echo("No pending movements.")
        return

    click.echo(f"{'Move':<6} {'Asset':<8} {'From':<6} {'To':<6} {'Requested by'}")
    for movement in movements:
        click.echo(
            f"{movement.id:<6} {movement.asset_id:<8} {movement.from_unit_id:<6} "
            f"{movement.to_unit_id:<6} {movement.requested_by_user_id}"
        )
    click.echo(f"TOTAL {len(movements)} pending movement(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(units_group)
    app.cli.add_command(users_group)
    app.cli.add_command(loans_group)
    app.cli.add_command(requests_group)
    app.cli.add_command(audits_group)
    app.cli.add_command(movements_group)
