"""
Administrative audit log, kept apart from the points ledger.
"""
from datetime import datetime
from enum import Enum

from ..extensions import db


class AdminAction(str, Enum):
    POINTS_ADJUSTMENT = 'points_adjustment'
    COUPON_USED = 'coupon_used'
    ELEVATE_USER_TO_ADMIN = 'elevate_user_to_admin'
    BIRTHDAY_CRON = 'birthday_cron'
    BIRTHDAY_CRON_ERROR = 'birthday_cron_error'


class AdminLog(db.Model):
    __tablename__ = 'admin_logs'

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(50), nullable=False, index=True)
    admin_id = db.Column(db.String(128))  # 'system' for scheduled jobs
    target_user_id = db.Column(db.String(128), index=True)
    details = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<AdminLog {self.id}: {self.action} by {self.admin_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'action': self.action,
            'admin_id': self.admin_id,
            'target_user_id': self.target_user_id,
            'details': self.details or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
