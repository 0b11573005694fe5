# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/posdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-password "..."]
#   Idempotent bootstrap: creates tables and a default admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username admin --email admin@posdesk.local --full-name "Admin" --role ADMIN
#   Create a user (prompts for the password).

import click
from flask.cli import with_appcontext

from .errors import ApiError
from .extensions import db
from .models import User
from .models.auth import ROLES, ROLE_ADMIN, ROLE_CASHIER
from .services.auth_service import register_user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Username of the default admin')
@click.option('--admin-email', default='admin@posdesk.local', help='Email of the default admin')
@click.option('--admin-password', default='Password123!', help='Password of the default admin')
@with_appcontext
def init_system(admin_username, admin_email, admin_password):
    """
    Initialize the database and a default ADMIN account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing posdesk...")

    db.create_all()
    click.echo("PASS Tables created")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"PASS Using existing admin: {existing.username} (ID: {existing.id})")
        return

    user = register_user(
        full_name="Administrator",
        username=admin_username,
        email=admin_email,
        password=admin_password,
        role=ROLE_ADMIN,
    )
    click.echo(f"PASS Created admin: {user.username} (ID: {user.id})")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        raise click.UsageError("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return
    for u in users:
        status = "active" if u.is_active else "inactive"
        click.echo(f"{u.id:>4}  {u.username:<20} {u.role:<8} {status:<8} {u.email}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--full-name', prompt=True)
@click.option('--role', type=click.Choice(ROLES, case_sensitive=False), default=ROLE_CASHIER, show_default=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user_cmd(username, email, full_name, role, password):
    try:
        user = register_user(
            full_name=full_name,
            username=username,
            email=email,
            password=password,
            role=role,
        )
    except ApiError as e:
        details = "; ".join(f"{err['field']}: {err['message']}" for err in e.errors)
        raise click.ClickException(f"{e.message}{' (' + details + ')' if details else ''}")
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
