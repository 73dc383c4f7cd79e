# Overview: Flask CLI command groups for bootstrap and scheduled maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system create-user --email owner@example.com --password "Password123!"
#   Create an account (prompts if options are omitted).
#
# Scheduled jobs (same work as the /api/cron endpoints):
# - python -m flask jobs expire-products
#   Mark products past their expiry date as Expired.
# - python -m flask jobs mark-overdue
#   Move past-due Unpaid invoices to Overdue.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import maintenance_service
from .services.auth_service import register_user
from .validation import InventraError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@system_group.command('create-user')
@click.option('--email', prompt=True, help='Login email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', default=None, help='First name')
@click.option('--last-name', default=None, help='Last name')
@with_appcontext
def create_user_cli(email, password, first_name, last_name):
    """Create an account."""
    try:
        user = register_user(email=email, password=password, first_name=first_name, last_name=last_name)
    except InventraError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (id={user.id})")


@click.group('jobs')
def jobs_group():
    """Scheduled maintenance jobs."""


@jobs_group.command('expire-products')
@with_appcontext
def expire_products_cli():
    """Mark products past their expiry date as Expired."""
    count = maintenance_service.expire_products()
    click.echo(f"Marked {count} products as Expired.")


@jobs_group.command('mark-overdue')
@with_appcontext
def mark_overdue_cli():
    """Move past-due Unpaid invoices to Overdue."""
    count = maintenance_service.mark_overdue_invoices()
    click.echo(f"Marked {count} invoices as Overdue.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(jobs_group)
