# Overview: Flask CLI command groups for bootstrap, pricing inspection, and tax configuration.

# backend/wholesale/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Pricing:
# - python -m flask pricing quote --customer-id 1 --line 10:5 --line 11:2
#   Price an order without saving it (PRODUCT_ID:QUANTITY per line).
# - python -m flask pricing reprice 42
#   Recalculate an order and append a new audit version.
# - python -m flask pricing audits 42
#   List the audit versions recorded for an order.
#
# Tax configuration:
# - python -m flask taxes list [--all]
#   List flat tax rules (active only unless --all).

import click
from flask.cli import with_appcontext

from .extensions import db
from .money import format_cents
from .services import flat_tax_service, order_pricing_service, pricing_audit_service
from .services.order_pricing_service import OrderLineRequest, OrderRequest
from .validation import PricingError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including tax calculation audits!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


def _parse_line(raw: str) -> OrderLineRequest:
    product_id, sep, quantity = raw.partition(":")
    if not sep:
        raise click.BadParameter(f"expected PRODUCT_ID:QUANTITY, got {raw!r}")
    try:
        return OrderLineRequest(product_id=int(product_id), quantity=int(quantity))
    except ValueError:
        raise click.BadParameter(f"expected integers in {raw!r}")


@click.group('pricing')
def pricing_group():
    """Order pricing and audit inspection."""


@pricing_group.command('quote')
@click.option('--customer-id', type=int, required=True, help='Customer ID')
@click.option('--line', 'lines', multiple=True, required=True, help='PRODUCT_ID:QUANTITY (repeatable)')
@with_appcontext
def quote_cli(customer_id, lines):
    """Price an order without saving anything."""
    request = OrderRequest(customer_id=customer_id, lines=tuple(_parse_line(raw) for raw in lines))
    try:
        result = order_pricing_service.quote_order(request)
    except PricingError as e:
        raise click.ClickException(str(e))

    click.echo(f"{'#':<3} {'PRODUCT':<8} {'QTY':>5} {'UNIT':>11} {'SOURCE':<13} {'BASE':>12} {'PCT TAX':>10} {'FLAT TAX':>10}")
    click.echo("-" * 80)
    for number, line in enumerate(result.lines, start=1):
        flag = " !" if line.tax_config_warning else ""
        click.echo(
            f"{number:<3} {line.product_id:<8} {line.quantity:>5} {format_cents(line.unit_price_cents):>11} "
            f"{line.price_source:<13} {format_cents(line.line_base_cents):>12} "
            f"{format_cents(line.percentage_tax_cents):>10} {format_cents(line.flat_tax_cents):>10}{flag}"
        )
    click.echo("-" * 80)
    click.echo(f"Subtotal:       {format_cents(result.subtotal_cents)}")
    click.echo(f"Percentage tax: {format_cents(result.percentage_tax_cents)}")
    click.echo(f"Flat tax:       {format_cents(result.flat_tax_cents)}")
    click.echo(f"Total:          {format_cents(result.total_cents)}")
    for warning in result.warnings:
        click.echo(f"WARN {warning}")


@pricing_group.command('reprice')
@click.argument('order_id', type=int)
@with_appcontext
def reprice_cli(order_id):
    """Recalculate an order against current configuration."""
    try:
        order, _result, audit = order_pricing_service.reprice_order(order_id)
    except PricingError as e:
        raise click.ClickException(str(e))

    changed = "inputs changed" if audit.inputs_changed else "inputs unchanged"
    click.echo(f"PASS {order.order_number} repriced: total {format_cents(order.total_cents)} (audit v{audit.version}, {changed})")


@pricing_group.command('audits')
@click.argument('order_id', type=int)
@with_appcontext
def audits_cli(order_id):
    """List audit versions for an order."""
    audits = pricing_audit_service.get_audit(order_id)
    if not audits:
        click.echo(f"No audits recorded for order {order_id}.")
        return

    click.echo(f"{'VER':<4} {'CREATED':<21} {'SUBTOTAL':>12} {'TAX':>10} {'TOTAL':>12}  FLAGS")
    click.echo("-" * 75)
    for audit in audits:
        flags = []
        if audit.is_recalculation:
            flags.append("recalculated")
        if audit.inputs_changed:
            flags.append("inputs-changed")
        if audit.has_tax_config_warning:
            flags.append("tax-config-warning")
        created = audit.created_at.strftime("%Y-%m-%d %H:%M:%S") if audit.created_at else "-"
        click.echo(
            f"{audit.version:<4} {created:<21} {format_cents(audit.subtotal_cents):>12} "
            f"{format_cents(audit.total_tax_cents):>10} {format_cents(audit.total_cents):>12}  {', '.join(flags)}"
        )


@click.group('taxes')
def taxes_group():
    """Flat tax rule inspection."""


@taxes_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive rules')
@with_appcontext
def list_taxes_cli(include_inactive):
    rules = flat_tax_service.list_flat_taxes(include_inactive=include_inactive)
    if not rules:
        click.echo("No flat tax rules found.")
        return

    click.echo(f"{'ID':<5} {'NAME':<32} {'PER UNIT':>10} {'TIERS':<12} {'COUNTY':<12} {'ZIP':<8} ACTIVE")
    click.echo("-" * 90)
    for rule in rules:
        tiers = ",".join(str(t) for t in (rule.customer_tiers or []))
        click.echo(
            f"{rule.id:<5} {rule.name[:32]:<32} {format_cents(rule.tax_amount_cents):>10} {tiers:<12} "
            f"{(rule.county_restriction or '-'):<12} {(rule.zip_code_restriction or '-'):<8} "
            f"{'yes' if rule.is_active else 'no'}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(pricing_group)
    app.cli.add_command(taxes_group)
