"""
Spin wheel history.
"""
from datetime import datetime
from decimal import Decimal

from ..extensions import db


class SpinHistory(db.Model):
    """
    One row per spin attempt, losing spins included.

    Doubles as the source for the once-a-day check and the daily COGS budget.
    """
    __tablename__ = 'spin_history'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    result = db.Column(db.String(20), nullable=False)  # nothing, points, discount, free_item
    outcome = db.Column(db.String(30), nullable=False)  # table key, e.g. points_small
    value = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.String(200))
    cogs_value = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0'))
    user_tier = db.Column(db.String(20), nullable=False)

    spun_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        db.Index('ix_spin_history_user_spun', 'user_id', 'spun_at'),
    )

    def __repr__(self):
        return f'<SpinHistory {self.id}: {self.user_id} -> {self.outcome}>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'result': self.result,
            'outcome': self.outcome,
            'value': self.value,
            'description': self.description,
            'cogs_value': float(self.cogs_value or 0),
            'user_tier': self.user_tier,
            'spun_at': self.spun_at.isoformat() if self.spun_at else None,
        }
