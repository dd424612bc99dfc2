# Overview: Flask CLI command groups for bootstrap, tenant management and stock inspection.

# backend/oms/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "Org Name" --org-code ACME]
#   Idempotent bootstrap: creates tables, seeds system order statuses,
#   and creates a first organization if none exists.
# - python -m flask system seed-statuses
#   Seed missing system order statuses only.
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
#   List all organizations.
# - python -m flask orgs create --name "Acme Corp" --code "ACME"
#   Create a new organization (tenant).
#
# Inventory inspection:
# - python -m flask inventory check [--org-id 1]
#   Report variants whose stock breaks 0 <= reserved <= stock_on_hand.
#   Exits non-zero when any are found.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, Variant, Order, PurchaseInvoice
from .services.order_status_service import seed_order_statuses
from .services.stock_ledger import find_invariant_violations
from .services.tenant_service import create_organization


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@with_appcontext
def init_system(org_name, org_code):
    """
    Initialize the inventory system.

    Creates:
    - All tables (if missing)
    - System order statuses (New ... Returned)
    - A default organization (if none exists)
    """
    click.echo("START Initializing inventory system...")

    db.create_all()
    click.echo("PASS Tables ready")

    created = seed_order_statuses()
    click.echo(f"PASS Order statuses seeded ({created} new)")

    org = db.session.query(Organization).first()
    if org:
        click.echo(f"SKIP Organization already exists: {org.name} (ID: {org.id})")
    else:
        org = create_organization(org_name, org_code)
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")

    click.echo("DONE System initialized")


@system_group.command('seed-statuses')
@with_appcontext
def seed_statuses():
    """Seed missing system order statuses (idempotent)."""
    created = seed_order_statuses()
    click.echo(f"PASS Order statuses seeded ({created} new)")


# =============================================================================
# ORGANIZATION MANAGEMENT COMMANDS (MULTI-TENANT)
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Variants':<10} {'Orders':<8} {'Invoices'}")
    click.echo("="*80)

    for org in orgs:
        variant_count = db.session.query(Variant).filter_by(org_id=org.id).count()
        order_count = db.session.query(Order).filter_by(org_id=org.id).count()
        invoice_count = db.session.query(PurchaseInvoice).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"

        click.echo(
            f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} "
            f"{variant_count:<10} {order_count:<8} {invoice_count}"
        )

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    try:
        org = create_organization(name, code)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


# =============================================================================
# INVENTORY INSPECTION
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock consistency inspection commands."""


@inventory_group.command('check')
@click.option('--org-id', type=int, help='Limit the check to one organization')
@with_appcontext
def check_inventory(org_id):
    """Report variants violating 0 <= reserved <= stock_on_hand."""
    violations = find_invariant_violations(org_id)

    if not violations:
        click.echo("PASS All variants satisfy 0 <= reserved <= stock_on_hand")
        return

    click.echo(f"FAIL {len(violations)} variant(s) violate the stock invariant:")
    for v in violations:
        click.echo(f"   org={v.org_id} id={v.id} sku={v.sku} on_hand={v.stock_on_hand} reserved={v.reserved}")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(inventory_group)
