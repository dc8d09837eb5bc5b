# Overview: Flask CLI command groups for bootstrap, tenants, and ledger maintenance.

# backend/servicedesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
#   List all companies (tenants).
# - python -m flask tenants create --name "Acme Services" --code "ACME" [--tax-rate 16]
#   Create a new company.
#
# Inventory ledger:
# - python -m flask inventory verify [--tenant-id 1]
#   Compare every product's stock with the sum of its movements. Exits 1 on drift.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Company, Product
from .services import tenant_service
from .services.inventory_service import verify_stock_ledger


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask tenants create' next.")


@click.group('tenants')
def tenants_group():
    """Company (tenant) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all companies."""
    companies = db.session.query(Company).order_by(Company.id).all()

    if not companies:
        click.echo("No companies found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<12} {'Tax %':<8} {'Active':<8} {'Products'}")
    click.echo("="*72)

    for company in companies:
        product_count = db.session.query(Product).filter_by(tenant_id=company.id).count()
        active_str = "Yes" if company.is_active else "No"
        tax = "-" if company.tax_rate is None else f"{company.tax_rate:g}"
        click.echo(f"{company.id:<5} {company.name:<30} {company.code or '-':<12} {tax:<8} {active_str:<8} {product_count}")

    click.echo("="*72 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--tax-rate', type=float, default=None, help='Default tax percent for new documents')
@with_appcontext
def create_tenant_cli(name, code, tax_rate):
    """Create a new company (tenant)."""
    existing = db.session.query(Company).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Company with code '{code}' already exists")
        return

    try:
        company = tenant_service.create_company(name=name, code=code, tax_rate=tax_rate)
    except LedgerError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code})")


@click.group('inventory')
def inventory_group():
    """Inventory ledger maintenance commands."""


@inventory_group.command('verify')
@click.option('--tenant-id', type=int, default=None, help='Limit the check to one company')
@with_appcontext
def verify_inventory(tenant_id):
    """Check that stock equals the sum of movements for every product."""
    mismatches = verify_stock_ledger(tenant_id)

    if not mismatches:
        click.echo("PASS Stock matches the movement ledger for every product.")
        return

    click.echo(f"FAIL {len(mismatches)} product(s) disagree with their ledger:")
    for row in mismatches:
        click.echo(
            f"  tenant={row['tenant_id']} product={row['product_id']} ({row['name']}): "
            f"stock={row['stock']} ledger={row['ledger_stock']} diff={row['difference']:+d}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(inventory_group)
