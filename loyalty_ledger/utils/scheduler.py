"""
Background scheduler for automated tasks.

Handles:
- Birthday bonuses (daily at BIRTHDAY_CRON_HOUR in BIRTHDAY_CRON_TIMEZONE)
"""
import os
import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None
_flask_app = None  # Store Flask app reference for context


def init_scheduler(app):
    """
    Initialize the background scheduler.

    Only runs in production or when ENABLE_SCHEDULER is set.
    Only the first gunicorn worker starts it.
    """
    global _scheduler, _flask_app

    _flask_app = app

    if app.config.get('TESTING'):
        logger.info('[Scheduler] Disabled in testing mode')
        return None

    if not (os.getenv('FLASK_ENV') == 'production' or app.config.get('ENABLE_SCHEDULER')):
        logger.info('[Scheduler] Disabled (set FLASK_ENV=production or ENABLE_SCHEDULER=true)')
        return None

    if os.getenv('SCHEDULER_RUNNING') == 'true':
        logger.info('[Scheduler] Already running in another process')
        return None

    timezone = app.config.get('BIRTHDAY_CRON_TIMEZONE', 'America/New_York')
    hour = app.config.get('BIRTHDAY_CRON_HOUR', 9)

    _scheduler = BackgroundScheduler(
        timezone=timezone,
        job_defaults={
            'coalesce': True,  # Combine missed runs
            'max_instances': 1,
            'misfire_grace_time': 3600
        }
    )

    _scheduler.add_job(
        run_birthday_rewards,
        trigger=CronTrigger(hour=hour, minute=0, timezone=timezone),
        id='birthday_rewards',
        name='Award birthday bonus points',
        replace_existing=True
    )

    _scheduler.start()
    os.environ['SCHEDULER_RUNNING'] = 'true'
    logger.info(f'[Scheduler] Started: birthday rewards daily at {hour:02d}:00 {timezone}')

    atexit.register(shutdown_scheduler)
    return _scheduler


def shutdown_scheduler():
    """Gracefully shutdown the scheduler."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info('[Scheduler] Shutdown complete')


def run_birthday_rewards():
    """
    Daily birthday job. "Today" is the calendar date in the job's timezone.
    """
    if not _flask_app:
        logger.error('[Scheduler] Flask app not initialized')
        return

    with _flask_app.app_context():
        from ..services.birthday_service import BirthdayService, program_today
        from .cache import invalidate_analytics

        today = program_today()
        try:
            summary = BirthdayService().run(today)
        except Exception as e:
            logger.error(f'[Scheduler] Birthday job failed: {e}')
            return

        invalidate_analytics()
        logger.info(
            f"[Scheduler] Birthday job for {summary['date']}: "
            f"{summary['users_processed']} awarded, {summary['users_failed']} failed"
        )
