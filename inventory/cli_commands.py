"""
Flask CLI commands for database setup and stock maintenance.

Commands:
- flask init-db: Create all tables
- flask create-user: Create a dashboard user
- flask reconcile-stock: Compare stock balances with the ledger (and repair)
"""

import click
from flask import current_app
from inventory.database import get_session, create_tables
from inventory.exceptions import InventoryError
from inventory.models import ROLE_HIERARCHY


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_tables()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-user')
    @click.option('--email', prompt=True, help='User email address')
    @click.option('--name', prompt=True, help='Display name')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
    @click.option('--role', type=click.Choice(sorted(ROLE_HIERARCHY)), default='staff', show_default=True)
    def create_user(email, name, password, role):
        """Create a new dashboard user."""
        from inventory.services.auth_service import register_user

        try:
            user = register_user(get_session(), email, password, name, role=role)
        except InventoryError as e:
            click.echo(click.style(f'Error: {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('User created.', fg='green', bold=True))
        click.echo(f'   Email: {user.email}')
        click.echo(f'   Role:  {user.role}')
        click.echo(f'   ID:    {user.id}')

    @app.cli.command('reconcile-stock')
    @click.option('--product-id', type=int, default=None, help='Only this product')
    @click.option('--repair', is_flag=True, help='Reset drifting balances to the ledger balance')
    def reconcile_stock(product_id, repair):
        """Report (and optionally repair) drift between balances and the ledger."""
        from inventory.services.stock_service import reconcile_all, reconcile_product

        if product_id is not None:
            report = reconcile_product(get_session(), product_id, repair=repair)
            reports = [report] if report['drift'] else []
        else:
            reports = reconcile_all(get_session(), repair=repair)

        if not reports:
            click.echo(click.style('No drift: every balance matches its ledger.', fg='green'))
            return

        for report in reports:
            status = 'repaired' if report['repaired'] else 'DRIFT'
            click.echo(
                f"[{status}] product {report['product_id']} ({report['sku']}): "
                f"counter={report['recorded']} ledger={report['ledger']} drift={report['drift']:+d}"
            )
        current_app.logger.warning(f"[STOCK] reconcile-stock found {len(reports)} drifting products")

        if not repair:
            raise SystemExit(1)
