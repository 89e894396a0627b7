"""
CLI Commands for rewards operations.

The birthday run can be driven from cron instead of the in-process scheduler:

# Birthday bonuses (daily at 9 AM)
0 9 * * * cd /app && flask rewards birthday-cron
"""
import sys

import click
from flask.cli import with_appcontext

from ..services.birthday_service import BirthdayService
from ..services.redemption_service import RedemptionService
from ..services.unit_of_work import UnitOfWork
from ..utils.cache import invalidate_analytics


@click.group('rewards')
def rewards_cli():
    """Rewards program commands."""
    pass


@rewards_cli.command('birthday-cron')
@click.option('--date', 'run_date', type=click.DateTime(formats=['%Y-%m-%d']),
              help='Day to run for (default today in BIRTHDAY_CRON_TIMEZONE)')
@with_appcontext
def birthday_cron(run_date):
    """Award birthday bonuses for members born today."""
    summary = BirthdayService().run(run_date.date() if run_date else None)
    invalidate_analytics()

    click.echo(f"Birthday run for {summary['date']}")
    click.echo(f"  Awarded: {summary['users_processed']} members")
    click.echo(f"  Skipped: {summary['users_skipped']} (already received this year)")
    click.echo(f"  Failed: {summary['users_failed']}")
    click.echo(f"  Points: {summary['total_points_awarded']}")

    for result in summary['results']:
        if result['status'] == 'failed':
            click.echo(f"    - {result['user_id']}: {result['error']}")


@rewards_cli.command('seed-catalog')
@with_appcontext
def seed_catalog():
    """Insert or refresh the default reward catalog."""
    result = RedemptionService().seed_catalog()
    invalidate_analytics()
    click.echo(f"Catalog seeded: {result['created']} created, {result['updated']} updated")


@rewards_cli.command('verify-ledger')
@click.option('--user-id', help='Check a single member (or all if not specified)')
@with_appcontext
def verify_ledger(user_id):
    """Replay the ledger and report balances that do not match."""
    mismatches = UnitOfWork().ledger.verify(user_id)
    if not mismatches:
        click.echo('Ledger consistent')
        return

    click.echo(f"{len(mismatches)} mismatched balance(s):")
    for row in mismatches:
        click.echo(f"  - {row['user_id']}: profile {row['profile_points']}, ledger {row['ledger_points']}")
    sys.exit(1)


def init_app(app):
    """Register rewards commands with Flask app."""
    app.cli.add_command(rewards_cli)
