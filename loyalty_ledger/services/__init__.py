"""
Business logic services for the loyalty ledger.
"""
from .points_service import PointsService
from .redemption_service import RedemptionService
from .spin_service import SpinService
from .referral_service import ReferralService
from .birthday_service import BirthdayService
from .admin_service import AdminService
from .analytics_service import AnalyticsService, get_analytics

__all__ = [
    'PointsService',
    'RedemptionService',
    'SpinService',
    'ReferralService',
    'BirthdayService',
    'AdminService',
    'AnalyticsService',
    'get_analytics',
]
