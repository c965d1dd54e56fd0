# Overview: Flask CLI command groups for bootstrap, token issue, and ledger inspection.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Businesses (tenants):
# - python -m flask businesses create --name "Glow Salon" --code "GLOW"
# - python -m flask businesses list
#
# Users (actors recorded on movements and orders):
# - python -m flask users create --business-id 1 --name "Asha" --email asha@glow.local
# - python -m flask users list --business-id 1
#
# API tokens:
# - python -m flask tokens issue --user-id 1 [--ttl-hours 24]
#   Prints a bearer token once; only its hash is stored.
# - python -m flask tokens revoke <token>
#
# Ledger:
# - python -m flask inventory verify-ledger --business-id 1
#   Replays every product's movements and reports stock that disagrees.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Business, User
from .services import session_service
from .services.inventory_service import verify_ledger


@click.group('system')
def system_group():
    """Schema bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock ledger.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Create a business with 'python -m flask businesses create'.")


# =============================================================================
# BUSINESS MANAGEMENT COMMANDS (MULTI-TENANT)
# =============================================================================

@click.group('businesses')
def businesses_group():
    """Business (tenant) management commands."""


@businesses_group.command('list')
@with_appcontext
def list_businesses():
    """List all businesses."""
    businesses = db.session.query(Business).order_by(Business.id.asc()).all()

    if not businesses:
        click.echo("No businesses found.")
        return

    click.echo("\n" + "=" * 64)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Users'}")
    click.echo("=" * 64)

    for business in businesses:
        user_count = db.session.query(User).filter_by(business_id=business.id).count()
        active_str = "Yes" if business.is_active else "No"
        click.echo(f"{business.id:<5} {business.name:<30} {business.code or '-':<15} {active_str:<8} {user_count}")

    click.echo("=" * 64 + "\n")


@businesses_group.command('create')
@click.option('--name', required=True, help='Business name')
@click.option('--code', help='Short code (unique)')
@with_appcontext
def create_business_cli(name, code):
    """Create a new business (tenant)."""
    if code:
        existing = db.session.query(Business).filter_by(code=code).first()
        if existing:
            click.echo(f"FAIL Business with code '{code}' already exists")
            return

    business = Business(name=name, code=code, is_active=True)
    db.session.add(business)
    db.session.commit()

    click.echo(f"PASS Created business: {business.name} (ID: {business.id}, Code: {business.code or '-'})")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """Staff identities recorded as actors."""


@users_group.command('create')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address (unique within the business)')
@with_appcontext
def create_user_cli(business_id, name, email):
    """Create a staff user inside a business."""
    business = db.session.query(Business).filter_by(id=business_id).first()
    if not business:
        click.echo(f"FAIL Business ID {business_id} not found")
        return

    email = email.strip().lower()
    existing = db.session.query(User).filter_by(business_id=business_id, email=email).first()
    if existing:
        click.echo(f"FAIL User '{email}' already exists in this business")
        return

    user = User(business_id=business_id, name=name.strip(), email=email, is_active=True)
    db.session.add(user)
    db.session.commit()

    click.echo(f"PASS Created user: {user.name} <{user.email}> (ID: {user.id}) in '{business.name}'")


@users_group.command('list')
@click.option('--business-id', type=int, help='Only users of this business')
@with_appcontext
def list_users(business_id):
    """List users with their business and active status."""
    q = db.session.query(User).order_by(User.business_id.asc(), User.id.asc())
    if business_id:
        q = q.filter(User.business_id == business_id)
    users = q.all()

    if not users:
        click.echo("No users found.")
        return

    for user in users:
        active_str = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:<5} business={user.business_id:<5} {user.name:<25} {user.email:<30} {active_str}")


# =============================================================================
# TOKEN COMMANDS
# =============================================================================

@click.group('tokens')
def tokens_group():
    """Bearer token issue and revocation."""


@tokens_group.command('issue')
@click.option('--user-id', type=int, required=True, help='User the token acts as')
@click.option('--ttl-hours', type=int, help='Lifetime in hours (default SESSION_TTL_HOURS)')
@with_appcontext
def issue_token(user_id, ttl_hours):
    """Issue a token; the plaintext is shown once."""
    try:
        session, token = session_service.create_session(user_id, ttl_hours=ttl_hours)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Token for user {user_id} (business {session.business_id}), expires {session.expires_at:%Y-%m-%d %H:%M} UTC")
    click.echo(token)


@tokens_group.command('revoke')
@click.argument('token')
@with_appcontext
def revoke_token(token):
    if session_service.revoke_session(token):
        click.echo("PASS Token revoked")
    else:
        click.echo("FAIL Token not found or already revoked")


# =============================================================================
# INVENTORY COMMANDS
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock ledger inspection."""


@inventory_group.command('verify-ledger')
@click.option('--business-id', type=int, required=True, help='Business ID')
@with_appcontext
def verify_ledger_cli(business_id):
    """Replay movements per product and compare with stored stock."""
    problems = verify_ledger(business_id)
    if not problems:
        click.echo("PASS Every product's stock matches its ledger.")
        return

    for p in problems:
        click.echo(
            f"FAIL product {p['product_id']} ({p['sku']}): stored={p['current_stock']} "
            f"replayed={p['replayed_stock']} broken_movements={p['broken_movement_ids']}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(businesses_group)
    app.cli.add_command(users_group)
    app.cli.add_command(tokens_group)
    app.cli.add_command(inventory_group)
