"""
Referral Processor.

A referral pays both sides once: REFERRER_BONUS_POINTS to the member who
shared the code and REFEREE_BONUS_POINTS to the new member. Both credits,
the referee's ``referred_by`` and the ReferralBonus record commit together.
"""
from datetime import datetime
from typing import Any, Dict

from flask import current_app

from ..models import ReferralBonus, TransactionType
from ..utils.exceptions import (
    AlreadyExistsError,
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
)
from ..utils.policy import REFEREE_BONUS_POINTS, REFERRER_BONUS_POINTS
from ..utils.validation import require_string
from .identity_gateway import get_identity_gateway
from .ledger import apply_points_delta
from .notification_service import notify_after_commit
from .rate_limiter import enforce_rate_limit
from .unit_of_work import UnitOfWork


class ReferralService:

    def process_referral_bonus(
        self,
        referrer_user_id: str,
        new_user_id: str,
        referral_code: str,
    ) -> Dict[str, Any]:
        referrer_user_id = require_string(referrer_user_id, 'referrer_user_id')
        new_user_id = require_string(new_user_id, 'new_user_id')
        referral_code = require_string(referral_code, 'referral_code', max_length=40).upper()

        if referrer_user_id == new_user_id:
            raise InvalidArgumentError('Users cannot refer themselves')

        enforce_rate_limit('processReferral', new_user_id)

        identity = get_identity_gateway()
        if not identity.user_exists(referrer_user_id):
            raise NotFoundError('Referrer', referrer_user_id)
        if not identity.user_exists(new_user_id):
            raise NotFoundError('User', new_user_id)

        def work(uow):
            referrer, _ = uow.profiles.get_or_create(referrer_user_id)
            if not referrer.referral_code or referrer.referral_code.upper() != referral_code:
                raise InvalidArgumentError('Invalid referral code for referrer', 'referral_code')

            existing = uow.session.query(ReferralBonus).filter_by(
                referrer_user_id=referrer_user_id,
                new_user_id=new_user_id,
            ).first()
            if existing is not None:
                raise AlreadyExistsError('Referral bonus already processed for these users')

            referee, _ = uow.profiles.get_or_create(new_user_id)
            if referee.referred_by:
                raise FailedPreconditionError('User has already been referred')

            referrer_change = apply_points_delta(
                uow,
                referrer,
                REFERRER_BONUS_POINTS,
                TransactionType.REFERRAL_BONUS,
                f"Referral bonus for inviting {new_user_id}",
                metadata={'role': 'referrer', 'new_user_id': new_user_id, 'referral_code': referral_code},
            )
            referee_change = apply_points_delta(
                uow,
                referee,
                REFEREE_BONUS_POINTS,
                TransactionType.REFERRAL_BONUS,
                'Welcome bonus for joining with a referral',
                metadata={'role': 'referee', 'referrer_user_id': referrer_user_id, 'referral_code': referral_code},
            )
            uow.profiles.update(referee, referred_by=referrer_user_id)

            uow.session.add(ReferralBonus(
                referrer_user_id=referrer_user_id,
                new_user_id=new_user_id,
                referral_code=referral_code,
                referrer_bonus=REFERRER_BONUS_POINTS,
                referee_bonus=REFEREE_BONUS_POINTS,
                referrer_transaction_id=referrer_change.entry.id,
                new_user_transaction_id=referee_change.entry.id,
                processed_at=datetime.utcnow(),
            ))
            uow.session.flush()

            notify_after_commit(uow, 'referral_bonus', referrer_user_id, {'points': REFERRER_BONUS_POINTS})
            notify_after_commit(uow, 'referral_bonus', new_user_id, {'points': REFEREE_BONUS_POINTS})

            return {
                'success': True,
                'referrer_bonus': REFERRER_BONUS_POINTS,
                'referee_bonus': REFEREE_BONUS_POINTS,
                'referrer_transaction_id': referrer_change.entry.id,
                'new_user_transaction_id': referee_change.entry.id,
                'referrer_new_balance': referrer_change.new_balance,
                'new_user_new_balance': referee_change.new_balance,
            }

        result = UnitOfWork().run(work)
        current_app.logger.info(f"Referral processed: {referrer_user_id} -> {new_user_id}")
        return result

    def get_referral_code(self, user_id: str) -> Dict[str, Any]:
        """Return the member's code, issuing one on first request."""
        user_id = require_string(user_id, 'user_id')
        if not get_identity_gateway().user_exists(user_id):
            raise NotFoundError('User', user_id)

        def work(uow):
            profile, _ = uow.profiles.get_or_create(user_id)
            code, generated = uow.profiles.ensure_referral_code(profile)
            return {'referral_code': code, 'generated': generated}

        return UnitOfWork().run(work)
