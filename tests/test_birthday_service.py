"""
Tests for birthday rewards.

Tests cover:
- Matching today's birthdays (including Feb 29 in common years)
- Once-per-year guard keyed on the run date
- Default run date in the program timezone
- Per-member failure isolation
- Run summary and error logging
- Birthday validation
"""
from datetime import date, datetime
from unittest.mock import patch

import pytest

from loyalty_ledger.extensions import db
from loyalty_ledger.models import AdminLog, LoyaltyProfile, PointsTransaction
from loyalty_ledger.services.birthday_service import BirthdayService, birthday_keys_for, program_today
from loyalty_ledger.services.ledger import apply_points_delta
from loyalty_ledger.utils.exceptions import InvalidArgumentError


class TestBirthdayKeys:
    """Tests for birthday_keys_for."""

    def test_regular_day(self):
        assert birthday_keys_for(date(2026, 3, 14)) == ['03-14']

    def test_leap_day_birthdays_move_to_feb_28(self):
        assert birthday_keys_for(date(2027, 2, 28)) == ['02-28', '02-29']

    def test_leap_year_keeps_feb_29(self):
        assert birthday_keys_for(date(2028, 2, 28)) == ['02-28']
        assert birthday_keys_for(date(2028, 2, 29)) == ['02-29']


class TestBirthdayRun:
    """Tests for BirthdayService.run."""

    def test_awards_todays_birthdays(self, app, make_profile):
        make_profile('user-alice', birthday='03-14')
        make_profile('user-bob', birthday='03-14', last_birthday_bonus_at=datetime(2026, 1, 2))
        make_profile('user-carol', birthday='05-01')

        with app.app_context():
            summary = BirthdayService().run(date(2026, 3, 14))

            assert summary['users_processed'] == 1
            assert summary['users_skipped'] == 1
            assert summary['users_failed'] == 0
            assert summary['total_points_awarded'] == 100

            alice = db.session.get(LoyaltyProfile, 'user-alice')
            assert alice.points == 100
            assert alice.last_birthday_bonus_year == 2026

            entry = PointsTransaction.query.filter_by(user_id='user-alice').one()
            assert entry.type == 'birthday_bonus'

            assert db.session.get(LoyaltyProfile, 'user-carol').points == 0

            log = AdminLog.query.filter_by(action='birthday_cron').one()
            assert log.admin_id == 'system'
            assert log.details['users_processed'] == 1
            assert log.details['date'] == '2026-03-14'

    def test_second_run_same_year_skips(self, app, make_profile):
        make_profile('user-alice', birthday='03-14')
        year = datetime.utcnow().year

        with app.app_context():
            BirthdayService().run(date(year, 3, 14))
            summary = BirthdayService().run(date(year, 3, 14))

            assert summary['users_processed'] == 0
            assert summary['users_skipped'] == 1
            assert db.session.get(LoyaltyProfile, 'user-alice').points == 100

    def test_bonus_paid_again_next_year_for_back_dated_runs(self, app, make_profile):
        make_profile('user-alice', birthday='12-31')

        with app.app_context():
            first = BirthdayService().run(date(2025, 12, 31))
            second = BirthdayService().run(date(2026, 12, 31))

            assert first['users_processed'] == 1
            assert second['users_processed'] == 1
            alice = db.session.get(LoyaltyProfile, 'user-alice')
            assert alice.points == 200
            assert alice.last_birthday_bonus_year == 2026

    def test_bonus_year_follows_run_date(self, app, make_profile):
        make_profile('user-alice', birthday='12-31')

        with app.app_context():
            BirthdayService().run(date(2025, 12, 31))
            assert db.session.get(LoyaltyProfile, 'user-alice').last_birthday_bonus_year == 2025

            rerun = BirthdayService().run(date(2025, 12, 31))
            assert rerun['users_skipped'] == 1

    def test_feb_29_birthday_celebrated_in_common_year(self, app, make_profile):
        make_profile('user-alice', birthday='02-29')

        with app.app_context():
            summary = BirthdayService().run(date(2027, 2, 28))
            assert summary['users_processed'] == 1

    def test_one_failure_does_not_stop_the_run(self, app, make_profile):
        make_profile('user-alice', birthday='03-14')
        make_profile('user-bob', birthday='03-14')

        def flaky(uow, profile, *args, **kwargs):
            if profile.user_id == 'user-bob':
                raise RuntimeError('ledger unavailable')
            return apply_points_delta(uow, profile, *args, **kwargs)

        with app.app_context():
            with patch('loyalty_ledger.services.birthday_service.apply_points_delta', side_effect=flaky):
                summary = BirthdayService().run(date(2026, 3, 14))

            assert summary['users_processed'] == 1
            assert summary['users_failed'] == 1
            failed = [r for r in summary['results'] if r['status'] == 'failed']
            assert failed[0]['user_id'] == 'user-bob'
            assert 'ledger unavailable' in failed[0]['error']
            assert db.session.get(LoyaltyProfile, 'user-bob').points == 0

    def test_query_failure_is_logged_and_raised(self, app):
        with app.app_context():
            with patch(
                'loyalty_ledger.services.profile_store.ProfileStore.with_birthday',
                side_effect=RuntimeError('database down'),
            ):
                with pytest.raises(RuntimeError):
                    BirthdayService().run(date(2026, 3, 14))

            log = AdminLog.query.filter_by(action='birthday_cron_error').one()
            assert log.details['error'] == 'database down'

    def test_notification_sent_after_award(self, app, make_profile):
        make_profile('user-alice', birthday='03-14')

        with app.app_context():
            with patch('loyalty_ledger.services.notification_service.NotificationService.send') as send:
                BirthdayService().run(date(2026, 3, 14))

            send.assert_called_once_with('birthday_bonus', 'user-alice', {'points': 100, 'new_balance': 100})


class TestSetBirthday:
    """Tests for BirthdayService.set_birthday."""

    def test_stores_month_day(self, app):
        with app.app_context():
            result = BirthdayService().set_birthday('user-alice', 2, 29)
            assert result['birthday'] == '02-29'
            assert db.session.get(LoyaltyProfile, 'user-alice').birthday == '02-29'

    @pytest.mark.parametrize('month,day', [(2, 30), (4, 31), (13, 1), (0, 5), ('3', 14)])
    def test_invalid_dates_rejected(self, app, month, day):
        with app.app_context():
            with pytest.raises(InvalidArgumentError):
                BirthdayService().set_birthday('user-alice', month, day)


class TestProgramToday:
    """The default run date is today in BIRTHDAY_CRON_TIMEZONE."""

    def test_follows_configured_timezone(self, app):
        # UTC+14 and UTC-11 are always on different calendar days
        with app.app_context():
            app.config['BIRTHDAY_CRON_TIMEZONE'] = 'Pacific/Kiritimati'
            ahead = program_today()
            app.config['BIRTHDAY_CRON_TIMEZONE'] = 'Pacific/Pago_Pago'
            behind = program_today()

        assert ahead > behind

    def test_run_defaults_to_program_today(self, app, make_profile):
        make_profile('user-alice', birthday='03-14')

        with app.app_context():
            with patch(
                'loyalty_ledger.services.birthday_service.program_today',
                return_value=date(2026, 3, 14),
            ):
                summary = BirthdayService().run()

            assert summary['date'] == '2026-03-14'
            assert summary['users_processed'] == 1
