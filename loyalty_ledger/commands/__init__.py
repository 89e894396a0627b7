"""
CLI Commands for the loyalty ledger.

Usage:
    flask rewards birthday-cron                    # Award today's birthday bonuses
    flask rewards birthday-cron --date 2026-03-14  # Re-run for a given day
    flask rewards seed-catalog                     # Insert/refresh the default catalog
    flask rewards verify-ledger --user-id abc123   # Compare balances with the ledger
"""
from .rewards import init_app as init_rewards_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_rewards_commands(app)
