"""
Flask CLI commands for billing maintenance.

Commands:
- flask init-db: Create the database tables
- flask check-overdue: Move sent invoices past their due date to overdue
"""

import click
from quotevoice.database import db_session, create_all
from quotevoice.exceptions import StorageError
from quotevoice.services.invoice_service import check_overdue_invoices


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table known to the models."""
        create_all()
        click.echo(click.style('✅ Database tables created.', fg='green'))

    @app.cli.command('check-overdue')
    @click.option('--tenant-id', type=int, default=None, help='Only sweep this tenant')
    @click.option('--date', 'today', type=click.DateTime(formats=['%Y-%m-%d']), default=None,
                  help='Reference date (YYYY-MM-DD), defaults to today')
    def check_overdue(tenant_id, today):
        """Mark sent invoices whose due date has passed as overdue."""
        try:
            count = check_overdue_invoices(
                db_session,
                today=today.date() if today else None,
                tenant_id=tenant_id
            )
        except StorageError as e:
            click.echo(click.style(f'❌ Overdue sweep failed: {e.detail}', fg='red'))
            raise SystemExit(1)

        color = 'yellow' if count else 'green'
        click.echo(click.style(f'{count} invoice(s) marked overdue', fg=color))
