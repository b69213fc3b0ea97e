# Overview: Flask CLI command groups for bootstrap, background jobs, and maintenance.

# backend/printshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated databases).
# - python -m flask system seed-catalog
#   Idempotently add PLA/PETG filaments, printing options and price tables.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --email admin@printshop.local --name Admin --password "Password123" --role admin
# - python -m flask users list
#
# Background jobs:
# - python -m flask jobs finalize [--limit 20]
#   Process due order file finalization jobs (schedule every minute when
#   FINALIZE_FILES_INLINE is off).
# - python -m flask jobs list [--status needs_reconciliation]
# - python -m flask jobs requeue <order_id>
#
# Maintenance:
# - python -m flask maintenance cleanup-temp-files
# - python -m flask maintenance cleanup-sessions --retention-days 30
# - python -m flask maintenance cleanup-shipping-cache
#
# Slicer:
# - python -m flask slicer slice part.stl [--material PETG --layer-height 0.2 --infill 20% --wall-count 2]
#   Send one local file to SUPERSLICE_API_URL and print the estimate.

import os

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import FilamentType, PrintingOption, User, USER_ROLES
from .models.orders import JOB_STATUSES
from .services import (
    catalog_service,
    finalization_service,
    http_client,
    pricing_service,
    session_service,
    shipping_service,
    slicing_service,
    temp_file_service,
)
from .services.auth_service import PasswordValidationError, create_user
from .validation import ConflictError, NotFoundError, ValidationError


SEED_FILAMENTS = [
    {
        "name": "PLA",
        "description": "Easy to print, good detail. Best for prototypes and decorative parts.",
        "colors": [
            {"name": "White", "hexCode": "#FFFFFF"},
            {"name": "Black", "hexCode": "#000000"},
            {"name": "Red", "hexCode": "#E53935"},
            {"name": "Blue", "hexCode": "#1E88E5"},
        ],
        "pricingTable": [
            {"layerHeight": 0.1, "pricePerGram": 1200},
            {"layerHeight": 0.15, "pricePerGram": 1000},
            {"layerHeight": 0.2, "pricePerGram": 800},
            {"layerHeight": 0.3, "pricePerGram": 700},
        ],
    },
    {
        "name": "PETG",
        "description": "Tougher and more heat resistant than PLA.",
        "colors": [
            {"name": "Clear", "hexCode": "#F5F5F5"},
            {"name": "Black", "hexCode": "#000000"},
        ],
        "pricingTable": [
            {"layerHeight": 0.15, "pricePerGram": 1300},
            {"layerHeight": 0.2, "pricePerGram": 1100},
            {"layerHeight": 0.3, "pricePerGram": 950},
        ],
    },
]

SEED_PRINTING_OPTIONS = {
    "infill": {
        "title": "Infill",
        "description": "How solid the inside of the part is.",
        "maxValue": 100,
        "values": [
            {"label": "Light (10%)", "value": "10%"},
            {"label": "Standard (20%)", "value": "20%"},
            {"label": "Strong (50%)", "value": "50%"},
            {"label": "Solid (100%)", "value": "100%"},
        ],
    },
    "wallCount": {
        "title": "Wall count",
        "description": "Number of perimeter lines.",
        "maxValue": 20,
        "values": [
            {"label": "2 walls", "value": "2"},
            {"label": "3 walls", "value": "3"},
            {"label": "4 walls", "value": "4"},
        ],
    },
}


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    shipping_service.get_courier_settings()
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
    click.echo("PASS Database reset complete. Run 'python -m flask system seed-catalog' next.")


@system_group.command('seed-catalog')
@with_appcontext
def seed_catalog():
    """Add the default filaments, printing options and price tables (skips existing ones)."""
    for seed in SEED_FILAMENTS:
        filament = db.session.query(FilamentType).filter_by(name=seed["name"]).first()
        if filament is None:
            filament = catalog_service.create_filament({
                "name": seed["name"],
                "description": seed["description"],
                "colors": seed["colors"],
            })
            click.echo(f"PASS Created filament {filament.name}")
        else:
            click.echo(f"SKIP Filament {filament.name} exists")

        if filament.pricing_table is None:
            pricing_service.upsert_pricing_table(filament.id, seed["pricingTable"])
            click.echo(f"PASS Created pricing table for {filament.name}")

    for option_type, seed in SEED_PRINTING_OPTIONS.items():
        if db.session.query(PrintingOption).filter_by(option_type=option_type).first():
            click.echo(f"SKIP Printing option {option_type} exists")
            continue
        catalog_service.upsert_printing_option(option_type, seed)
        click.echo(f"PASS Created printing option {option_type}")

    shipping_service.get_courier_settings()
    click.echo("PASS Catalog seeded.")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='customer', show_default=True)
@with_appcontext
def create_user_cli(email, name, password, role):
    """
    Create a user. This is the only way to create admins.

    Password: 8+ characters with at least one letter and one digit.
    """
    try:
        user = create_user(email=email, name=name, password=password, role=role)
        click.echo(f"PASS Created user: {user.email} with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except (ConflictError, ValidationError) as e:
        click.echo(f"FAIL {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<9} {status}")


# =============================================================================
# JOBS
# =============================================================================

@click.group('jobs')
def jobs_group():
    """Background job commands."""


@jobs_group.command('finalize')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def finalize_jobs_cli(limit):
    """Run due order file finalization jobs."""
    jobs = finalization_service.process_due_jobs(limit=limit)
    if not jobs:
        click.echo("No finalization jobs due.")
        return
    for job in jobs:
        line = f"Order {job.order_id}: {job.status} (attempt {job.attempts}, {job.finalized_count} finalized"
        if job.missing_count:
            line += f", {job.missing_count} missing"
        click.echo(line + ")")


@jobs_group.command('list')
@click.option('--status', type=click.Choice(list(JOB_STATUSES)), default=None)
@with_appcontext
def list_jobs_cli(status):
    jobs = finalization_service.list_jobs(status)
    if not jobs:
        click.echo("No finalization jobs.")
        return
    for job in jobs:
        click.echo(f"Order {job.order_id:>6}  {job.status:<22} attempts={job.attempts}  {job.last_error or ''}")


@jobs_group.command('requeue')
@click.argument('order_id', type=int)
@with_appcontext
def requeue_job_cli(order_id):
    """Put a needs_reconciliation job back in the queue."""
    try:
        finalization_service.requeue_job(order_id)
        click.echo(f"PASS Requeued finalization for order {order_id}")
    except (NotFoundError, ConflictError) as e:
        click.echo(f"FAIL {str(e)}")


# =============================================================================
# MAINTENANCE
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-temp-files')
@with_appcontext
def cleanup_temp_files_cli():
    """Delete expired temporary uploads."""
    deleted = temp_file_service.cleanup_expired_temp_files()
    click.echo(f"Deleted {deleted} expired temp files.")


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


@maintenance_group.command('cleanup-shipping-cache')
@with_appcontext
def cleanup_shipping_cache_cli():
    deleted = shipping_service.purge_expired_cache()
    click.echo(f"Deleted {deleted} expired shipping cache entries.")


# =============================================================================
# SLICER
# =============================================================================

@click.group('slicer')
def slicer_group():
    """Slicing service commands."""


@slicer_group.command('slice')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--material', default=slicing_service.DEFAULT_FILAMENT_TYPE, show_default=True)
@click.option('--layer-height', default="0.2", show_default=True)
@click.option('--infill', default="20%", show_default=True)
@click.option('--wall-count', default="2", show_default=True)
@with_appcontext
def slice_file_cli(path, material, layer_height, infill, wall_count):
    """Slice one local model file with the configured slicer."""
    with open(path, "rb") as fh:
        content = fh.read()
    request = slicing_service.SliceRequest(
        layer_height=layer_height, infill=infill, wall_count=wall_count, material=material,
    )
    timeout = float(current_app.config.get("SLICER_TIMEOUT_SECONDS", 300))
    with http_client.build_client(timeout=timeout) as http:
        slicer = slicing_service.client_from_config(current_app.config, http=http)
        try:
            stats = slicer.slice(os.path.basename(path), content, request)
        except (slicing_service.SlicingError, ValidationError) as e:
            click.echo(f"FAIL {str(e)}")
            return
    click.echo(f"PASS {stats.filament_weight_g:g} g, {stats.print_time_minutes:g} min")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(jobs_group)
    app.cli.add_command(maintenance_group)
    app.cli.add_command(slicer_group)
