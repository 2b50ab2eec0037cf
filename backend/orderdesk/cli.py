# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/orderdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--email admin@orderdesk.local]
#   Create tables (dev) and seed the admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--type business] [--status pending]
# - python -m flask users create-admin --name Admin --email admin@orderdesk.local --password "Password123"
# - python -m flask users set-status 42 approved --remarks "KYC ok"
# - python -m flask users set-active 42 --inactive
#
# Cart:
# - python -m flask cart clear-user 42
#   Soft-clear every pending line of a user's cart.
#
# Sessions:
# - python -m flask sessions cleanup
#   Delete expired/revoked session tokens older than 30 days.
# - python -m flask sessions expire-login-requests
#   Mark approved/logged-in login requests whose window has passed as expired.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import auth_service, cart_service, login_request_service, session_service
from .services.auth_service import PasswordValidationError
from .validation import ConflictError, NotFoundError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--name', default='Administrator', help='Admin display name')
@click.option('--email', default='admin@orderdesk.local', help='Admin email')
@click.option('--password', default='Password123', help='Admin password')
@with_appcontext
def init_system(name, email, password):
    """
    Create all tables and the admin account.

    The admin user should end up with the id configured as ADMIN_USER_ID,
    which receives admin-directed notifications.
    """
    click.echo("START Initializing orderdesk...")
    db.create_all()
    click.echo("PASS Tables created")

    existing = db.session.query(User).filter_by(type="admin").order_by(User.id.asc()).first()
    if existing:
        click.echo(f"WARN  Admin already exists: {existing.email} (ID: {existing.id})")
    else:
        try:
            admin = auth_service.create_admin(name=name, email=email, password=password)
        except (PasswordValidationError, ConflictError, ValidationError) as e:
            raise click.ClickException(str(e))
        click.echo(f"PASS Created admin: {admin.email} (ID: {admin.id})")
        existing = admin

    configured = current_app.config.get("ADMIN_USER_ID")
    if existing.id != configured:
        click.echo(f"WARN  ADMIN_USER_ID is {configured} but the admin user has ID {existing.id}")
    click.echo("DONE orderdesk initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection and management."""


@users_group.command('list')
@click.option('--type', 'user_type', default=None, help='admin or business')
@click.option('--status', default=None, help='pending, approved, rejected or denied')
@with_appcontext
def list_users(user_type, status):
    try:
        users = auth_service.list_users(user_type=user_type, status=status)
    except ValidationError as e:
        raise click.ClickException(str(e))

    if not users:
        click.echo("No users found")
        return
    for u in users:
        state = "active" if u.is_active else "inactive"
        click.echo(f"{u.id:>5}  {u.type:<9} {u.status or '-':<9} {state:<8} {u.email}  {u.name}")


@users_group.command('create-admin')
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--phone', 'phone_number', default=None)
@with_appcontext
def create_admin(name, email, password, phone_number):
    try:
        user = auth_service.create_admin(name=name, email=email, password=password, phone_number=phone_number)
    except (PasswordValidationError, ConflictError, ValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created admin {user.email} (ID: {user.id})")


@users_group.command('set-status')
@click.argument('user_id', type=int)
@click.argument('status')
@click.option('--remarks', default=None)
@with_appcontext
def set_status(user_id, status, remarks):
    """Set a business user's approval status (no notification is sent)."""
    try:
        user = auth_service.update_user_status(user_id, status, remarks)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS User {user.id} is now {user.status}")


@users_group.command('set-active')
@click.argument('user_id', type=int)
@click.option('--active/--inactive', default=True, help='Deactivating also revokes open sessions')
@with_appcontext
def set_active(user_id, active):
    try:
        user = auth_service.set_active(user_id, active)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS User {user.id} is now {'active' if user.is_active else 'inactive'}")


@click.group('cart')
def cart_group():
    """Cart maintenance."""


@cart_group.command('clear-user')
@click.argument('user_id', type=int)
@with_appcontext
def clear_user(user_id):
    if db.session.get(User, user_id) is None:
        raise click.ClickException(f"User {user_id} not found")
    count = cart_service.clear_user_cart(user_id)
    click.echo(f"PASS Cleared {count} cart items for user {user_id}")


@click.group('sessions')
def sessions_group():
    """Session token maintenance."""


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} expired/revoked sessions")


@sessions_group.command('expire-login-requests')
@with_appcontext
def expire_login_requests():
    expired = login_request_service.expire_elapsed_requests()
    click.echo(f"PASS Expired {expired} login requests")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(cart_group)
    app.cli.add_command(sessions_group)
