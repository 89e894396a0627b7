"""
Loyalty profile and points ledger models.

A LoyaltyProfile holds the spendable balance for one user. Every change to
that balance is paired with exactly one PointsTransaction, so replaying a
user's ledger in creation order always reproduces ``points``.
"""
from datetime import datetime
from enum import Enum

from ..extensions import db


class LoyaltyTier(str, Enum):
    """Loyalty ranks, derived from lifetime points."""
    BRONZE = 'bronze'
    SILVER = 'silver'
    GOLD = 'gold'
    PLATINUM = 'platinum'


class TransactionType(str, Enum):
    """Ledger entry types."""
    EARNED = 'earned'
    REDEEMED = 'redeemed'
    ADMIN_ADJUSTMENT = 'admin_adjustment'
    BIRTHDAY_BONUS = 'birthday_bonus'
    REFERRAL_BONUS = 'referral_bonus'
    SPIN = 'spin'


class LoyaltyProfile(db.Model):
    """
    Loyalty state for a single user.

    ``version`` is an optimistic lock: SQLAlchemy adds it to every UPDATE and
    raises StaleDataError when a concurrent writer got there first.
    """
    __tablename__ = 'loyalty_profiles'

    user_id = db.Column(db.String(128), primary_key=True)

    points = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points = db.Column(db.Integer, nullable=False, default=0)
    tier = db.Column(db.String(20), nullable=False, default=LoyaltyTier.BRONZE.value)

    # Referrals
    referral_code = db.Column(db.String(40), unique=True)
    referred_by = db.Column(db.String(128))

    # Birthday stored as MM-DD
    birthday = db.Column(db.String(5), index=True)
    last_birthday_bonus_at = db.Column(db.DateTime)

    # Spin wheel
    last_spin_at = db.Column(db.DateTime)
    lifetime_spins = db.Column(db.Integer, nullable=False, default=0)

    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {'version_id_col': version}

    __table_args__ = (
        db.CheckConstraint('points >= 0', name='points_non_negative'),
        db.Index('ix_loyalty_profiles_tier', 'tier'),
    )

    @property
    def last_birthday_bonus_year(self):
        return self.last_birthday_bonus_at.year if self.last_birthday_bonus_at else None

    def __repr__(self):
        return f'<LoyaltyProfile {self.user_id}: {self.points} pts ({self.tier})>'

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'points': self.points,
            'lifetime_points': self.lifetime_points,
            'tier': self.tier,
            'referral_code': self.referral_code,
            'referred_by': self.referred_by,
            'birthday': self.birthday,
            'last_birthday_bonus_year': self.last_birthday_bonus_year,
            'last_spin_at': self.last_spin_at.isoformat() if self.last_spin_at else None,
            'lifetime_spins': self.lifetime_spins,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class PointsTransaction(db.Model):
    """
    Append-only ledger entry.

    ``delta`` is signed; zero marks annotation entries such as tier changes.
    Rows are never updated or deleted once written.
    """
    __tablename__ = 'points_transactions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    delta = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(30), nullable=False)
    description = db.Column(db.String(500))

    order_id = db.Column(db.String(100))
    admin_id = db.Column(db.String(128))
    meta = db.Column('metadata', db.JSON)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index('ix_points_transactions_user_created', 'user_id', 'created_at'),
        # One earning per order, whatever the delivery count
        db.Index(
            'uq_points_transactions_earned_order',
            'order_id',
            unique=True,
            sqlite_where=db.text("type = 'earned' AND order_id IS NOT NULL"),
            postgresql_where=db.text("type = 'earned' AND order_id IS NOT NULL"),
        ),
    )

    def __repr__(self):
        return f'<PointsTransaction {self.id}: {self.delta:+d} {self.type} for {self.user_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'delta': self.delta,
            'type': self.type,
            'description': self.description,
            'order_id': self.order_id,
            'admin_id': self.admin_id,
            'metadata': self.meta or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
