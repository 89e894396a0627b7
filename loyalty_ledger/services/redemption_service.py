"""
Redemption Engine.

Turns points into rewards under three profit controls:
- the member must have the points (and the tier, for restricted rewards)
- the trailing-window giveback (reward COGS / dollar value of points spent)
  may not rise above MAX_GIVEBACK_PERCENTAGE
- at most MAX_DAILY_REDEMPTIONS per member per day

Also handles in-store fulfillment (mark used), read-only code checks and
the member's own redemption list.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    AdminAction,
    AdminLog,
    RedemptionStatus,
    RewardCatalogItem,
    TransactionType,
    UserRedemption,
)
from ..utils.codes import generate_redemption_code
from ..utils.exceptions import (
    FailedPreconditionError,
    InsufficientPointsError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
)
from ..utils.policy import (
    COGS_WINDOW_DAYS,
    DEFAULT_REWARD_CATALOG,
    DOLLARS_PER_POINT,
    MAX_DAILY_REDEMPTIONS,
    MAX_GIVEBACK_PERCENTAGE,
    REDEMPTION_EXPIRY_DAYS,
)
from ..utils.validation import optional_dict, optional_string, require_points, require_string
from .ledger import apply_points_delta
from .notification_service import notify_after_commit
from .tier_service import meets_tier_requirement
from .unit_of_work import UnitOfWork

MAX_CODE_ATTEMPTS = 10


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def giveback_percentage(total_cogs: Decimal, total_points: int) -> Decimal:
    total_dollars = Decimal(total_points) * DOLLARS_PER_POINT
    if total_dollars <= 0:
        return Decimal('0')
    return total_cogs / total_dollars * Decimal('100')


def window_totals(session, since: datetime) -> Tuple[Decimal, int]:
    """Sum of COGS and points over redemptions created since ``since``."""
    cogs, points = session.query(
        func.coalesce(func.sum(UserRedemption.estimated_cogs_value), 0),
        func.coalesce(func.sum(UserRedemption.points_redeemed), 0),
    ).filter(UserRedemption.created_at >= since).one()
    return to_decimal(cogs), int(points)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


class RedemptionService:
    """
    Usage:
        service = RedemptionService()
        result = service.redeem_points('user-1', 'freeside100', 100)
        service.mark_coupon_used(result['redemption_code'], used_by='staff-1')
    """

    # ==================== Redeem ====================

    def redeem_points(
        self,
        user_id: str,
        reward_id: str,
        points: int,
        description: str = None,
        metadata: Dict[str, Any] = None,
    ) -> Dict[str, Any]:
        user_id = require_string(user_id, 'user_id')
        reward_id = require_string(reward_id, 'reward_id', max_length=50)
        points = require_points(points)
        description = optional_string(description, 'description')
        metadata = optional_dict(metadata)

        def work(uow):
            now = datetime.utcnow()

            reward = uow.session.get(RewardCatalogItem, reward_id)
            if reward is None or not reward.is_active:
                raise NotFoundError('Reward', reward_id)

            # Client may be showing a stale price
            if points != reward.points_cost:
                raise InvalidArgumentError(
                    f"Points mismatch: {reward.name} costs {reward.points_cost} points", 'points'
                )

            profile, _ = uow.profiles.get_or_create(user_id)
            if profile.points < points:
                raise InsufficientPointsError(profile.points, points)

            if not meets_tier_requirement(profile.tier, reward.tier_restrictions):
                raise FailedPreconditionError('Insufficient tier level for this reward')

            cogs = to_decimal(reward.max_cogs_value)
            window_cogs, window_points = window_totals(uow.session, now - timedelta(days=COGS_WINDOW_DAYS))
            projected = giveback_percentage(window_cogs + cogs, window_points + points)
            if projected > MAX_GIVEBACK_PERCENTAGE:
                current_app.logger.warning(
                    f"Redemption of {reward_id} by {user_id} blocked: giveback would be {projected:.2f}%"
                )
                raise FailedPreconditionError(
                    'Redemption would exceed profit controls. Please try again later.'
                )

            redeemed_today = uow.session.query(func.count(UserRedemption.id)).filter(
                UserRedemption.user_id == user_id,
                UserRedemption.created_at >= start_of_day(now),
            ).scalar()
            if redeemed_today >= MAX_DAILY_REDEMPTIONS:
                raise FailedPreconditionError(
                    f"Daily redemption limit reached ({MAX_DAILY_REDEMPTIONS} per day)"
                )

            code = self._unique_code(uow.session)
            change = apply_points_delta(
                uow,
                profile,
                -points,
                TransactionType.REDEEMED,
                description or f"Redeemed {reward.name}",
                metadata={
                    **metadata,
                    'reward_id': reward.id,
                    'reward_name': reward.name,
                    'redemption_code': code,
                },
            )

            redemption = UserRedemption(
                user_id=user_id,
                reward_id=reward.id,
                reward_name=reward.name,
                points_redeemed=points,
                estimated_cogs_value=cogs,
                redemption_code=code,
                status=RedemptionStatus.ACTIVE.value,
                meta=metadata,
                created_at=now,
                expires_at=now + timedelta(days=REDEMPTION_EXPIRY_DAYS),
            )
            uow.session.add(redemption)
            uow.session.flush()

            notify_after_commit(uow, 'reward_redeemed', user_id, {
                'reward_name': reward.name,
                'redemption_code': code,
                'expires_at': redemption.expires_at.date().isoformat(),
            })

            return {
                'success': True,
                'transaction_id': change.entry.id,
                'redemption_id': redemption.id,
                'redemption_code': code,
                'new_balance': change.new_balance,
                'points_redeemed': points,
                'reward_name': reward.name,
                'expires_at': redemption.expires_at.isoformat(),
            }

        result = UnitOfWork().run(work)
        current_app.logger.info(
            f"{user_id} redeemed {reward_id} for {points} points (code {result['redemption_code']})"
        )
        return result

    # ==================== Fulfillment ====================

    def mark_coupon_used(
        self,
        redemption_code: str,
        used_by: str,
        order_id: str = None,
        metadata: Dict[str, Any] = None,
    ) -> Dict[str, Any]:
        code = require_string(redemption_code, 'redemption_code', max_length=20).upper()
        order_id = optional_string(order_id, 'order_id', max_length=100)
        metadata = optional_dict(metadata)

        def work(uow):
            now = datetime.utcnow()
            redemption = uow.session.query(UserRedemption).filter_by(redemption_code=code).first()
            if redemption is None:
                raise NotFoundError('Redemption code', code)

            status = redemption.effective_status(now)
            if status == RedemptionStatus.USED.value:
                raise FailedPreconditionError('Redemption code has already been used')
            if status == RedemptionStatus.EXPIRED.value:
                raise FailedPreconditionError('Redemption code has expired')

            redemption.status = RedemptionStatus.USED.value
            redemption.used_at = now
            redemption.used_by = used_by
            redemption.order_id = order_id
            redemption.meta = {**(redemption.meta or {}), **metadata}

            uow.session.add(AdminLog(
                action=AdminAction.COUPON_USED.value,
                admin_id=used_by,
                target_user_id=redemption.user_id,
                details={
                    'redemption_code': code,
                    'redemption_id': redemption.id,
                    'reward_id': redemption.reward_id,
                    'order_id': order_id,
                },
                created_at=now,
            ))
            uow.session.flush()

            return {
                'success': True,
                'redemption_id': redemption.id,
                'reward_name': redemption.reward_name,
                'points_redeemed': redemption.points_redeemed,
                'user_id': redemption.user_id,
                'used_at': now.isoformat(),
            }

        result = UnitOfWork().run(work)
        current_app.logger.info(f"Redemption {code} marked used by {used_by}")
        return result

    def validate_redemption_code(self, redemption_code: str) -> Dict[str, Any]:
        """Read-only check for staff before fulfillment."""
        code = require_string(redemption_code, 'redemption_code', max_length=20).upper()
        redemption = UserRedemption.query.filter_by(redemption_code=code).first()
        if redemption is None:
            return {'valid': False, 'reason': 'not_found'}

        status = redemption.effective_status()
        if status == RedemptionStatus.USED.value:
            return {
                'valid': False,
                'reason': 'already_used',
                'used_at': redemption.used_at.isoformat() if redemption.used_at else None,
            }
        if status == RedemptionStatus.EXPIRED.value:
            return {
                'valid': False,
                'reason': 'expired',
                'expires_at': redemption.expires_at.isoformat(),
            }
        return {'valid': True, 'redemption': redemption.to_dict()}

    def list_redemptions(self, user_id: str, status: str = None) -> List[Dict[str, Any]]:
        """A member's redemptions, newest first, with their codes and current status."""
        user_id = require_string(user_id, 'user_id')
        if status is not None and status not in {s.value for s in RedemptionStatus}:
            raise InvalidArgumentError(f"Unknown redemption status {status!r}", 'status')

        now = datetime.utcnow()
        redemptions = (
            UserRedemption.query.filter_by(user_id=user_id)
            .order_by(UserRedemption.created_at.desc(), UserRedemption.id.desc())
            .all()
        )
        return [
            r.to_dict() for r in redemptions
            if status is None or r.effective_status(now) == status
        ]

    # ==================== Catalog ====================

    def list_catalog(self) -> List[Dict[str, Any]]:
        rewards = RewardCatalogItem.query.filter_by(is_active=True).order_by(
            RewardCatalogItem.sort_order, RewardCatalogItem.points_cost
        ).all()
        return [reward.to_dict() for reward in rewards]

    def seed_catalog(self, items: List[Dict[str, Any]] = None) -> Dict[str, int]:
        """Insert or refresh catalog entries by id."""
        created = updated = 0
        for item in items if items is not None else DEFAULT_REWARD_CATALOG:
            reward = db.session.get(RewardCatalogItem, item['id'])
            if reward is None:
                reward = RewardCatalogItem(id=item['id'])
                db.session.add(reward)
                created += 1
            else:
                updated += 1
            for key, value in item.items():
                if key != 'id':
                    setattr(reward, key, value)
            if reward.is_active is None:
                reward.is_active = True
        db.session.commit()
        return {'created': created, 'updated': updated}

    def _unique_code(self, session) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_redemption_code()
            if session.query(UserRedemption.id).filter_by(redemption_code=code).first() is None:
                return code
        raise InternalError('Could not generate a unique redemption code')
