"""
Birthday Rewards Service

Daily batch that awards BIRTHDAY_BONUS_POINTS once per calendar year to
members whose birthday is today. Each member is processed in their own
transaction; a failure is recorded against that member and the run moves on.
"""
import calendar
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from flask import current_app

from ..extensions import db
from ..models import AdminAction, AdminLog, TransactionType
from ..utils.exceptions import InvalidArgumentError
from ..utils.policy import BIRTHDAY_BONUS_POINTS
from ..utils.validation import require_int, require_string
from .ledger import apply_points_delta
from .notification_service import notify_after_commit
from .unit_of_work import UnitOfWork


@dataclass
class BirthdayResult:
    """Outcome for one member in a run."""
    user_id: str
    status: str  # awarded, skipped, failed
    points: int = 0
    transaction_id: Optional[int] = None
    error: Optional[str] = None


def program_today() -> date:
    """Calendar date in the program timezone (BIRTHDAY_CRON_TIMEZONE)."""
    timezone = current_app.config.get('BIRTHDAY_CRON_TIMEZONE') or 'America/New_York'
    return datetime.now(ZoneInfo(timezone)).date()


def birthday_keys_for(today: date) -> List[str]:
    """MM-DD keys celebrated today; Feb 29 birthdays move to Feb 28 in common years."""
    keys = [f"{today.month:02d}-{today.day:02d}"]
    if today.month == 2 and today.day == 28 and not calendar.isleap(today.year):
        keys.append('02-29')
    return keys


class BirthdayService:
    """Service for birthday tracking and the daily bonus run."""

    def set_birthday(self, user_id: str, month: int, day: int) -> Dict[str, Any]:
        user_id = require_string(user_id, 'user_id')
        month = require_int(month, 'month', minimum=1, maximum=12)
        day = require_int(day, 'day', minimum=1, maximum=31)

        # Leap year 2000 admits Feb 29
        try:
            date(2000, month, day)
        except ValueError:
            raise InvalidArgumentError(f"Invalid birthday {month:02d}-{day:02d}", 'day')

        def work(uow):
            profile, _ = uow.profiles.get_or_create(user_id)
            uow.profiles.update(profile, birthday=f"{month:02d}-{day:02d}")
            return {'success': True, 'user_id': user_id, 'birthday': profile.birthday}

        return UnitOfWork().run(work)

    def run(self, today: date = None) -> Dict[str, Any]:
        """
        Award today's birthday bonuses and write the run summary.

        If the member query itself fails, an error summary is written and the
        exception propagates.
        """
        today = today or program_today()
        current_app.logger.info(f"Birthday run for {today.isoformat()}")

        try:
            profiles = UnitOfWork().profiles.with_birthday(birthday_keys_for(today))
            user_ids = [profile.user_id for profile in profiles]
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception(f"Birthday run failed: {e}")
            self._write_log(AdminAction.BIRTHDAY_CRON_ERROR, {
                'date': today.isoformat(),
                'error': str(e),
            })
            raise

        results = [self._process_member(user_id, today) for user_id in user_ids]

        awarded = [r for r in results if r.status == 'awarded']
        summary = {
            'date': today.isoformat(),
            'users_processed': len(awarded),
            'users_skipped': sum(1 for r in results if r.status == 'skipped'),
            'users_failed': sum(1 for r in results if r.status == 'failed'),
            'total_points_awarded': sum(r.points for r in awarded),
            'results': [asdict(r) for r in results],
        }
        self._write_log(AdminAction.BIRTHDAY_CRON, summary)
        current_app.logger.info(
            f"Birthday run complete: {summary['users_processed']} awarded, "
            f"{summary['users_skipped']} skipped, {summary['users_failed']} failed"
        )
        return summary

    def _process_member(self, user_id: str, today: date) -> BirthdayResult:
        def work(uow):
            profile = uow.profiles.get(user_id)
            if profile.last_birthday_bonus_year == today.year:
                return BirthdayResult(user_id=user_id, status='skipped')

            change = apply_points_delta(
                uow,
                profile,
                BIRTHDAY_BONUS_POINTS,
                TransactionType.BIRTHDAY_BONUS,
                f"Happy Birthday! {BIRTHDAY_BONUS_POINTS} bonus points",
                metadata={'year': today.year},
                tier_note='birthday bonus',
            )
            # Stamp carries the run date; the yearly guard reads its year
            uow.profiles.update(
                profile,
                last_birthday_bonus_at=datetime.combine(today, datetime.utcnow().time()),
            )
            notify_after_commit(uow, 'birthday_bonus', user_id, {
                'points': BIRTHDAY_BONUS_POINTS,
                'new_balance': change.new_balance,
            })
            return BirthdayResult(
                user_id=user_id,
                status='awarded',
                points=BIRTHDAY_BONUS_POINTS,
                transaction_id=change.entry.id,
            )

        try:
            return UnitOfWork().run(work)
        except Exception as e:
            current_app.logger.error(f"Birthday bonus failed for {user_id}: {e}")
            return BirthdayResult(user_id=user_id, status='failed', error=str(e))

    def _write_log(self, action: AdminAction, details: Dict[str, Any]) -> None:
        db.session.add(AdminLog(
            action=action.value,
            admin_id='system',
            details=details,
            created_at=datetime.utcnow(),
        ))
        db.session.commit()
