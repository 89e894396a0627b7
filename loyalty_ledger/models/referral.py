"""
Referral bonus records.
"""
from datetime import datetime

from ..extensions import db


class ReferralBonus(db.Model):
    """
    Proof that a referral paid out.

    A referee can be referred once, so ``new_user_id`` is unique; the pair
    constraint backs the duplicate check in the referral processor.
    """
    __tablename__ = 'referral_bonuses'

    id = db.Column(db.Integer, primary_key=True)
    referrer_user_id = db.Column(db.String(128), nullable=False, index=True)
    new_user_id = db.Column(db.String(128), nullable=False, unique=True)
    referral_code = db.Column(db.String(40), nullable=False)

    referrer_bonus = db.Column(db.Integer, nullable=False)
    referee_bonus = db.Column(db.Integer, nullable=False)
    referrer_transaction_id = db.Column(db.Integer, db.ForeignKey('points_transactions.id'))
    new_user_transaction_id = db.Column(db.Integer, db.ForeignKey('points_transactions.id'))

    processed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('referrer_user_id', 'new_user_id', name='uq_referral_bonuses_pair'),
    )

    def __repr__(self):
        return f'<ReferralBonus {self.referrer_user_id} -> {self.new_user_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'referrer_user_id': self.referrer_user_id,
            'new_user_id': self.new_user_id,
            'referral_code': self.referral_code,
            'referrer_bonus': self.referrer_bonus,
            'referee_bonus': self.referee_bonus,
            'referrer_transaction_id': self.referrer_transaction_id,
            'new_user_transaction_id': self.new_user_transaction_id,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
        }
