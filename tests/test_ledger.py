"""
Tests for the transaction ledger and unit of work.

Tests cover:
- Ledger replay matches balances after mixed operations
- Non-negative balances
- Retry on optimistic lock conflicts
- Abort after exhausted retries
- Post-commit hooks
"""
import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from loyalty_ledger.extensions import db
from loyalty_ledger.models import LoyaltyProfile, PointsTransaction, TransactionType, UserRedemption
from loyalty_ledger.services.ledger import apply_points_delta
from loyalty_ledger.services.unit_of_work import UnitOfWork
from loyalty_ledger.utils.exceptions import (
    AbortedError,
    FailedPreconditionError,
    InsufficientPointsError,
)


class TestLedgerConsistency:
    """Replaying a user's ledger reproduces their balance."""

    def test_replay_after_mixed_operations(self, app, make_profile, make_reward):
        from loyalty_ledger.services.admin_service import AdminService
        from loyalty_ledger.services.points_service import PointsService
        from loyalty_ledger.services.redemption_service import RedemptionService

        make_profile('user-alice', points=200)
        make_reward('cheap_treat', 100, '0.05')

        with app.app_context():
            PointsService().earn_points('user-alice', 400, order_id='A-1')
            RedemptionService().redeem_points('user-alice', 'cheap_treat', 100)
            AdminService('admin-ada').adjust_points('user-alice', -1000, 'Chargeback')

            uow = UnitOfWork()
            profile = uow.profiles.get('user-alice')
            assert profile.points == 0
            assert uow.ledger.replay_balance('user-alice') == 0
            assert uow.ledger.verify() == []

    def test_verify_reports_tampered_balance(self, app, make_profile):
        make_profile('user-alice', points=120)

        with app.app_context():
            profile = db.session.get(LoyaltyProfile, 'user-alice')
            profile.points = 999
            db.session.commit()

            mismatches = UnitOfWork().ledger.verify('user-alice')
            assert mismatches == [
                {'user_id': 'user-alice', 'profile_points': 999, 'ledger_points': 120}
            ]

    def test_history_is_newest_first(self, app, make_profile):
        from loyalty_ledger.services.points_service import PointsService

        make_profile('user-alice', points=10)

        with app.app_context():
            PointsService().earn_points('user-alice', 5, description='second')
            history = PointsService().get_history('user-alice', page=1, per_page=10)

            assert history['total'] == 2
            assert history['transactions'][0]['description'] == 'second'


class TestNonNegativity:
    """Balances never go below zero."""

    def test_debit_past_zero_raises(self, app, make_profile):
        make_profile('user-alice', points=30)

        with app.app_context():
            def work(uow):
                profile = uow.profiles.get('user-alice')
                apply_points_delta(uow, profile, -31, TransactionType.REDEEMED, 'Too much')

            with pytest.raises(InsufficientPointsError):
                UnitOfWork().run(work)

            assert db.session.get(LoyaltyProfile, 'user-alice').points == 30
            assert PointsTransaction.query.filter_by(user_id='user-alice').count() == 1

    def test_floor_at_zero_records_applied_delta(self, app, make_profile):
        make_profile('user-alice', points=30)

        with app.app_context():
            def work(uow):
                profile = uow.profiles.get('user-alice')
                return apply_points_delta(
                    uow, profile, -50, TransactionType.ADMIN_ADJUSTMENT, 'Correction', floor_at_zero=True
                )

            change = UnitOfWork().run(work)
            assert change.new_balance == 0
            assert change.applied_delta == -30

    def test_database_rejects_negative_points(self, app, make_profile):
        make_profile('user-alice', points=5)

        with app.app_context():
            profile = db.session.get(LoyaltyProfile, 'user-alice')
            profile.points = -1
            with pytest.raises(IntegrityError):
                db.session.commit()
            db.session.rollback()


class TestUnitOfWorkRetries:
    """Tests for UnitOfWork.run conflict handling."""

    def test_gives_up_with_aborted(self, app):
        attempts = []

        def work(uow):
            attempts.append(1)
            raise StaleDataError('row changed underneath us')

        with app.app_context():
            with pytest.raises(AbortedError):
                UnitOfWork(max_attempts=2).run(work)

        assert len(attempts) == 2

    def test_domain_errors_are_not_retried(self, app):
        attempts = []

        def work(uow):
            attempts.append(1)
            raise FailedPreconditionError('nope')

        with app.app_context():
            with pytest.raises(FailedPreconditionError):
                UnitOfWork(max_attempts=3).run(work)

        assert len(attempts) == 1

    def test_after_commit_runs_only_on_success(self, app):
        calls = []

        def failing(uow):
            uow.after_commit(lambda: calls.append('failed'))
            raise FailedPreconditionError('nope')

        def succeeding(uow):
            uow.after_commit(lambda: calls.append('ok'))
            return 'done'

        with app.app_context():
            with pytest.raises(FailedPreconditionError):
                UnitOfWork().run(failing)
            assert UnitOfWork().run(succeeding) == 'done'

        assert calls == ['ok']

    def test_failing_hook_does_not_undo_commit(self, app, make_profile):
        make_profile('user-alice', points=0)

        def work(uow):
            profile = uow.profiles.get('user-alice')
            apply_points_delta(uow, profile, 10, TransactionType.EARNED, 'Bonus')
            uow.after_commit(lambda: 1 / 0)

        with app.app_context():
            UnitOfWork().run(work)
            assert db.session.get(LoyaltyProfile, 'user-alice').points == 10


class TestConcurrentRedemption:
    """
    Two 250-point redemptions against a 300-point balance: exactly one wins.

    The competing redemption is simulated by committing through a separate
    connection after this transaction has read the profile.
    """

    def test_stale_balance_is_retried_and_rejected(self, file_app, monkeypatch):
        from loyalty_ledger.models import RewardCatalogItem
        from loyalty_ledger.services.profile_store import ProfileStore
        from loyalty_ledger.services.redemption_service import RedemptionService

        with file_app.app_context():
            db.session.add(RewardCatalogItem(
                id='combo250', name='Combo', points_cost=250, max_cogs_value=0, tier_restrictions=[],
            ))
            db.session.add(LoyaltyProfile(
                user_id='user-alice', points=300, lifetime_points=300, tier='bronze', lifetime_spins=0,
            ))
            db.session.add(PointsTransaction(
                user_id='user-alice', delta=300, type='earned', description='Opening balance',
            ))
            db.session.commit()

            original = ProfileStore.get_or_create
            calls = []

            def racing_get_or_create(store, user_id):
                result = original(store, user_id)
                if not calls:
                    # The other redemption commits after we have read the profile
                    with db.engine.begin() as conn:
                        conn.execute(
                            LoyaltyProfile.__table__.update()
                            .where(LoyaltyProfile.__table__.c.user_id == user_id)
                            .values(points=50, version=LoyaltyProfile.__table__.c.version + 1)
                        )
                calls.append(user_id)
                return result

            monkeypatch.setattr(ProfileStore, 'get_or_create', racing_get_or_create)

            with pytest.raises(FailedPreconditionError):
                RedemptionService().redeem_points('user-alice', 'combo250', 250)

            assert len(calls) == 2
            db.session.expire_all()
            assert db.session.get(LoyaltyProfile, 'user-alice').points == 50
            assert UserRedemption.query.count() == 0
            assert PointsTransaction.query.filter_by(type='redeemed').count() == 0
