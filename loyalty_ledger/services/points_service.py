"""
Points earning service.

Handles:
- Direct earning (earnPoints), idempotent per order id
- Payment-succeeded events, converted to points at a tier-weighted rate
- Profile and ledger reads for the member dashboard
"""
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict

from flask import current_app

from ..models import TransactionType
from ..utils.exceptions import AlreadyExistsError, InvalidArgumentError
from ..utils.policy import (
    MIN_ORDER_AMOUNT_CENTS,
    POINTS_PER_DOLLAR,
    SUPPORTED_CURRENCIES,
    TIER_MULTIPLIERS,
)
from ..utils.validation import (
    optional_date,
    optional_dict,
    optional_string,
    require_int,
    require_points,
    require_string,
)
from .ledger import apply_points_delta
from .notification_service import notify_after_commit
from .tier_service import next_tier_progress
from .unit_of_work import UnitOfWork


def calculate_payment_points(amount_cents: int, tier: str) -> int:
    """floor(floor(dollars * rate) * tier multiplier)"""
    dollars = Decimal(amount_cents) / Decimal(100)
    base_points = (dollars * POINTS_PER_DOLLAR).to_integral_value(rounding=ROUND_FLOOR)
    multiplier = TIER_MULTIPLIERS.get(tier, Decimal('1.0'))
    return int((base_points * multiplier).to_integral_value(rounding=ROUND_FLOOR))


class PointsService:
    """
    Credits points to members.

    Usage:
        service = PointsService()
        result = service.earn_points('user-1', 120, order_id='A-1001')
    """

    def earn_points(
        self,
        user_id: str,
        points: int,
        order_id: str = None,
        description: str = None,
        metadata: Dict[str, Any] = None,
    ) -> Dict[str, Any]:
        """
        Award ``points`` to a member.

        With an ``order_id`` the call is idempotent: a second call for the same
        order returns ``duplicate: True`` and leaves the balance alone.
        """
        user_id = require_string(user_id, 'user_id')
        points = require_points(points)
        order_id = optional_string(order_id, 'order_id', max_length=100)
        description = optional_string(description, 'description')
        metadata = optional_dict(metadata)

        def work(uow):
            if order_id:
                existing = uow.ledger.find_earned_for_order(order_id)
                if existing is not None:
                    return self._duplicate_result(uow, user_id, order_id, existing)

            profile, _ = uow.profiles.get_or_create(user_id)
            change = apply_points_delta(
                uow,
                profile,
                points,
                TransactionType.EARNED,
                description or f"Earned {points} points",
                order_id=order_id,
                metadata=metadata,
            )
            if change.tier_changed:
                notify_after_commit(uow, 'tier_upgraded', user_id, {
                    'previous_tier': change.previous_tier,
                    'new_tier': change.new_tier,
                })
            return {
                'success': True,
                'duplicate': False,
                'transaction_id': change.entry.id,
                'points_awarded': points,
                'new_balance': change.new_balance,
                'new_lifetime_points': change.new_lifetime_points,
                'new_tier': change.new_tier,
                'tier_changed': change.tier_changed,
            }

        result = UnitOfWork().run(work)
        if not result['duplicate']:
            current_app.logger.info(
                f"Awarded {points} points to {user_id} (order={order_id}, balance={result['new_balance']})"
            )
        return result

    def award_for_payment(
        self,
        customer_id: str,
        amount_cents: int,
        currency: str,
        order_id: str,
    ) -> Dict[str, Any]:
        """
        Convert a payment-succeeded event into points.

        Small orders and unsupported currencies are accepted with zero points.
        Redelivery of the same order is a no-op.
        """
        customer_id = require_string(customer_id, 'customer_id')
        order_id = require_string(order_id, 'order_id', max_length=100)
        amount_cents = require_int(amount_cents, 'amount_cents', minimum=0)
        currency = (currency or '').lower()

        if currency not in SUPPORTED_CURRENCIES:
            current_app.logger.info(f"Order {order_id}: unsupported currency {currency!r}, no points")
            return {'success': True, 'points_awarded': 0, 'reason': 'unsupported_currency'}

        if amount_cents < MIN_ORDER_AMOUNT_CENTS:
            current_app.logger.info(f"Order {order_id}: {amount_cents} cents below minimum, no points")
            return {'success': True, 'points_awarded': 0, 'reason': 'below_minimum'}

        def work(uow):
            existing = uow.ledger.find_earned_for_order(order_id)
            if existing is not None:
                result = self._duplicate_result(uow, customer_id, order_id, existing)
                result['points_awarded'] = 0
                return result

            profile, _ = uow.profiles.get_or_create(customer_id)
            points = calculate_payment_points(amount_cents, profile.tier)
            if points <= 0:
                return {'success': True, 'points_awarded': 0, 'reason': 'no_points', 'duplicate': False}

            change = apply_points_delta(
                uow,
                profile,
                points,
                TransactionType.EARNED,
                f"Order {order_id}: ${Decimal(amount_cents) / 100:.2f}",
                order_id=order_id,
                metadata={
                    'source': 'payment',
                    'amount_cents': amount_cents,
                    'currency': currency,
                    'tier_multiplier': str(TIER_MULTIPLIERS.get(profile.tier, Decimal('1.0'))),
                },
            )
            if change.tier_changed:
                notify_after_commit(uow, 'tier_upgraded', customer_id, {
                    'previous_tier': change.previous_tier,
                    'new_tier': change.new_tier,
                })
            return {
                'success': True,
                'duplicate': False,
                'transaction_id': change.entry.id,
                'points_awarded': points,
                'new_balance': change.new_balance,
                'new_tier': change.new_tier,
                'tier_changed': change.tier_changed,
            }

        result = UnitOfWork().run(work)
        current_app.logger.info(
            f"Payment {order_id} for {customer_id}: {result['points_awarded']} points"
            f"{' (duplicate)' if result.get('duplicate') else ''}"
        )
        return result

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        user_id = require_string(user_id, 'user_id')
        profile, _ = UnitOfWork().run(lambda uow: uow.profiles.get_or_create(user_id))
        data = profile.to_dict()
        data['progress'] = next_tier_progress(profile.lifetime_points)
        return data

    def get_history(
        self,
        user_id: str,
        page: int = 1,
        per_page: int = 20,
        tx_type: str = None,
        start_date=None,
        end_date=None,
    ) -> Dict[str, Any]:
        """
        Newest-first ledger page, optionally narrowed to one entry type and an
        inclusive date range.
        """
        user_id = require_string(user_id, 'user_id')
        if page < 1 or not 1 <= per_page <= 100:
            raise InvalidArgumentError('page must be >= 1 and per_page between 1 and 100')
        if tx_type is not None and tx_type not in {t.value for t in TransactionType}:
            raise InvalidArgumentError(f"Unknown transaction type {tx_type!r}", 'type')
        start_date = optional_date(start_date, 'start_date')
        end_date = optional_date(end_date, 'end_date')
        if start_date and end_date and start_date > end_date:
            raise InvalidArgumentError('start_date must not be after end_date', 'start_date')

        pagination = UnitOfWork().ledger.history(
            user_id,
            page=page,
            per_page=per_page,
            tx_type=tx_type,
            start_date=start_date,
            end_date=end_date,
        )
        return {
            'transactions': [entry.to_dict() for entry in pagination.items],
            'page': pagination.page,
            'per_page': pagination.per_page,
            'total': pagination.total,
            'pages': pagination.pages,
        }

    def _duplicate_result(self, uow, user_id, order_id, existing) -> Dict[str, Any]:
        if existing.user_id != user_id:
            current_app.logger.warning(
                f"Order {order_id} already credited to another member; refused for {user_id}"
            )
            raise AlreadyExistsError(f"Order {order_id} has already been credited to another member")
        profile = uow.profiles.get(user_id)
        current_app.logger.info(f"Duplicate earn for order {order_id} ignored")
        return {
            'success': True,
            'duplicate': True,
            'message': f"Points already awarded for order {order_id}",
            'transaction_id': existing.id,
            'new_balance': profile.points if profile else 0,
        }
