"""
Reward catalog and redemption models.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum

from ..extensions import db


class RedemptionStatus(str, Enum):
    """Lifecycle of a redemption code."""
    ACTIVE = 'active'
    USED = 'used'
    EXPIRED = 'expired'


class RewardCatalogItem(db.Model):
    """
    Redeemable reward.

    ``max_cogs_value`` is the worst-case cost to the kitchen of fulfilling the
    reward and feeds the giveback cap. ``tier_restrictions`` lists the tiers
    allowed to redeem; empty means everyone.
    """
    __tablename__ = 'reward_catalog'

    id = db.Column(db.String(50), primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500))
    reward_type = db.Column(db.String(30), nullable=False, default='free_item')

    points_cost = db.Column(db.Integer, nullable=False)
    max_cogs_value = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0'))
    tier_restrictions = db.Column(db.JSON, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<RewardCatalogItem {self.id}: {self.points_cost} pts>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'reward_type': self.reward_type,
            'points_cost': self.points_cost,
            'max_cogs_value': float(self.max_cogs_value or 0),
            'tier_restrictions': self.tier_restrictions or [],
            'is_active': self.is_active,
        }


class UserRedemption(db.Model):
    """
    A reward claimed with points, fulfilled in store by its code.

    Created in the same transaction as the debiting ledger entry. Moves to
    ``used`` exactly once; reads past ``expires_at`` treat it as expired.
    """
    __tablename__ = 'user_redemptions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    reward_id = db.Column(db.String(50), nullable=False)
    reward_name = db.Column(db.String(100), nullable=False)
    points_redeemed = db.Column(db.Integer, nullable=False)
    estimated_cogs_value = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0'))

    redemption_code = db.Column(db.String(20), nullable=False, unique=True)
    status = db.Column(db.String(20), nullable=False, default=RedemptionStatus.ACTIVE.value)

    used_at = db.Column(db.DateTime)
    used_by = db.Column(db.String(128))
    order_id = db.Column(db.String(100))
    meta = db.Column('metadata', db.JSON)

    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    __table_args__ = (
        db.Index('ix_user_redemptions_created', 'created_at'),
        db.Index('ix_user_redemptions_user_created', 'user_id', 'created_at'),
    )

    def effective_status(self, now: datetime = None) -> str:
        now = now or datetime.utcnow()
        if self.status == RedemptionStatus.ACTIVE.value and self.expires_at and now > self.expires_at:
            return RedemptionStatus.EXPIRED.value
        return self.status

    def __repr__(self):
        return f'<UserRedemption {self.redemption_code}: {self.reward_id} ({self.status})>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'reward_id': self.reward_id,
            'reward_name': self.reward_name,
            'points_redeemed': self.points_redeemed,
            'estimated_cogs_value': float(self.estimated_cogs_value or 0),
            'redemption_code': self.redemption_code,
            'status': self.effective_status(),
            'used_at': self.used_at.isoformat() if self.used_at else None,
            'used_by': self.used_by,
            'order_id': self.order_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
        }
