# Overview: Flask CLI command groups for bootstrap, user admin, catalog import and order export.

# backend/field_orders/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Set FLASK_APP to wsgi.py, DATABASE_URL and FIELD_ORDERS_API_KEY.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@example.com --admin-password secret1]
#   Create all tables (idempotent) and optionally a first admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --email a@b.c --password secret1 --role sales --branch BGR
# - python -m flask users set-role a@b.c admin [--branch TGR]
# - python -m flask users deactivate a@b.c
#
# Catalog:
# - python -m flask catalog import-products products.xlsx --as admin@example.com
# - python -m flask catalog import-customers customers.csv --as admin@example.com
#
# Orders:
# - python -m flask orders export out.xlsx --as admin@example.com [--status new] [--ids 1,2,3]

from pathlib import Path

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import BRANCHES, ROLES, Profile, User
from .policies import PolicyError, actor_for_user
from .services import auth_service, export_service, import_service, profile_service
from .services.auth_service import AccountExistsError, PasswordValidationError
from .services.import_service import ImportFileError
from .validation import ValidationError


def _user_by_email(email: str) -> User:
    user = db.session.query(User).filter_by(email=auth_service.normalize_email(email)).first()
    if user is None:
        raise click.ClickException(f"No user with email {email}")
    return user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default=None, help='Create this admin account if it does not exist')
@click.option('--admin-password', default=None, help='Password for the admin account')
@with_appcontext
def init_system(admin_email, admin_password):
    """Create tables and, optionally, the first admin user."""
    click.echo("START Initializing field orders database...")
    db.create_all()
    click.echo("PASS Tables created")

    if admin_email:
        if not admin_password:
            raise click.ClickException("--admin-password is required with --admin-email")
        existing = db.session.query(User).filter_by(email=auth_service.normalize_email(admin_email)).first()
        if existing:
            profile_service.set_role(existing.id, role="admin")
            click.echo(f"PASS Existing user {existing.email} is now admin")
        else:
            user = auth_service.create_user(admin_email, admin_password, role="admin")
            click.echo(f"PASS Created admin user {user.email} (ID: {user.id})")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """Drop and recreate all tables. DEV/TEST only."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    rows = (
        db.session.query(User, Profile)
        .outerjoin(Profile, Profile.id == User.id)
        .order_by(User.id.asc())
        .all()
    )
    if not rows:
        click.echo("No users")
        return
    for user, profile in rows:
        role = profile.role if profile else "sales*"
        branch = profile.branch if profile else "JKP*"
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>5}  {user.email:<32} {role:<6} {branch:<4} {status}")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--full-name', default=None, help='Display name')
@click.option('--role', type=click.Choice(ROLES), default='sales', show_default=True)
@click.option('--branch', type=click.Choice(BRANCHES), default='JKP', show_default=True)
@with_appcontext
def create_user_cli(email, password, full_name, role, branch):
    try:
        user = auth_service.create_user(email, password, full_name=full_name, role=role, branch=branch)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except (AccountExistsError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (ID: {user.id}) role={role} branch={branch}")


@users_group.command('set-role')
@click.argument('email')
@click.argument('role', type=click.Choice(ROLES))
@click.option('--branch', type=click.Choice(BRANCHES), default=None)
@with_appcontext
def set_role_cli(email, role, branch):
    user = _user_by_email(email)
    auth_service.ensure_profile(user)
    profile = profile_service.set_role(user.id, role=role, branch=branch)
    click.echo(f"PASS {user.email}: role={profile.role} branch={profile.branch}")


@users_group.command('deactivate')
@click.argument('email')
@with_appcontext
def deactivate_user_cli(email):
    user = _user_by_email(email)
    auth_service.set_active(user.id, False)
    click.echo(f"PASS Deactivated {user.email}")


@click.group('catalog')
def catalog_group():
    """Bulk catalog import from CSV/XLSX files."""


def _run_import(kind: str, path: str, email: str) -> None:
    actor = actor_for_user(_user_by_email(email))
    file_path = Path(path)
    try:
        with file_path.open("rb") as fh:
            rows = import_service.read_rows(file_path.name, fh)
        if kind == "products":
            report = import_service.import_products(actor, rows)
        else:
            report = import_service.import_customers(actor, rows)
    except (ImportFileError, ValidationError, PolicyError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Inserted {report['inserted']}, updated {report['updated']}, skipped {report['skipped']}")
    for err in report["errors"]:
        click.echo(f"FAIL Row {err['row']}: {err['error']}")


@catalog_group.command('import-products')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--as', 'email', required=True, help='Email of the acting admin')
@with_appcontext
def import_products_cli(path, email):
    _run_import("products", path, email)


@catalog_group.command('import-customers')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--as', 'email', required=True, help='Email of the acting user')
@with_appcontext
def import_customers_cli(path, email):
    _run_import("customers", path, email)


@click.group('orders')
def orders_group():
    """Order reporting commands."""


@orders_group.command('export')
@click.argument('out', type=click.Path(dir_okay=True, file_okay=True))
@click.option('--as', 'email', required=True, help='Email of the acting user')
@click.option('--status', default=None, help='Only orders with this status')
@click.option('--ids', default=None, help='Comma separated order ids')
@click.option('--format', 'fmt', type=click.Choice(export_service.FORMATS), default=None,
              help='Defaults to the extension of OUT, else xlsx')
@with_appcontext
def export_orders_cli(out, email, status, ids, fmt):
    """Write the order-item export. OUT may be a directory (file name is generated)."""
    actor = actor_for_user(_user_by_email(email))
    out_path = Path(out)
    if fmt is None:
        suffix = out_path.suffix.lstrip(".").lower()
        fmt = suffix if suffix in export_service.FORMATS else "xlsx"
    try:
        order_ids = [int(i) for i in ids.split(",") if i.strip()] if ids else None
        content, filename, _ = export_service.export_order_items(actor, order_ids, status, fmt)
    except ValueError as e:
        raise click.ClickException(str(e))

    if out_path.is_dir():
        out_path = out_path / filename
    out_path.write_bytes(content)
    click.echo(f"PASS Wrote {out_path}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(orders_group)
