"""
Database models for the loyalty ledger.
"""
from .loyalty import LoyaltyProfile, PointsTransaction, LoyaltyTier, TransactionType
from .redemption import RewardCatalogItem, UserRedemption, RedemptionStatus
from .spin import SpinHistory
from .referral import ReferralBonus
from .audit import AdminLog, AdminAction

__all__ = [
    'LoyaltyProfile',
    'PointsTransaction',
    'LoyaltyTier',
    'TransactionType',
    'RewardCatalogItem',
    'UserRedemption',
    'RedemptionStatus',
    'SpinHistory',
    'ReferralBonus',
    'AdminLog',
    'AdminAction',
]
