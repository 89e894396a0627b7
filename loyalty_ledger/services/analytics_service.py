"""
Loyalty Analytics Service.

Read-only rollups for the admin dashboard:
- Program overview (points issued and redeemed, outstanding balance)
- Giveback percentage: redemption COGS over the dollar value of points spent
- Tier distribution
- Top rewards and spin wheel statistics
- COGS trend (30 days, 7 days, today, daily breakdown)

Results are memoized for ANALYTICS_CACHE_SECONDS.
"""
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import func

from ..extensions import db
from ..models import LoyaltyProfile, PointsTransaction, SpinHistory, TransactionType, UserRedemption
from ..utils.cache import cache
from ..utils.policy import ANALYTICS_CACHE_SECONDS, MAX_ANALYTICS_DAYS, TIER_ORDER
from .redemption_service import giveback_percentage, start_of_day, to_decimal, window_totals
from .spin_service import daily_spin_cogs


def clamp_days(days) -> int:
    try:
        days = int(days)
    except (TypeError, ValueError):
        days = 30
    return max(1, min(days, MAX_ANALYTICS_DAYS))


class AnalyticsService:
    """
    Usage:
        service = AnalyticsService(days=30)
        data = service.build()
    """

    def __init__(self, days: int = 30, now: datetime = None):
        self.days = clamp_days(days)
        self.now = now or datetime.utcnow()
        self.since = self.now - timedelta(days=self.days)

    def build(self) -> Dict[str, Any]:
        return {
            'period_days': self.days,
            'generated_at': self.now.isoformat(),
            'overview': self.get_overview(),
            'user_tiers': self.get_tier_distribution(),
            'redemptions': self.get_redemption_stats(),
            'spins': self.get_spin_stats(),
            'cogs_analysis': self.get_cogs_analysis(),
        }

    # ==================== OVERVIEW ====================

    def get_overview(self) -> Dict[str, Any]:
        total_users = db.session.query(func.count(LoyaltyProfile.user_id)).scalar() or 0
        current_balance = db.session.query(func.coalesce(func.sum(LoyaltyProfile.points), 0)).scalar()

        active_users = db.session.query(
            func.count(func.distinct(PointsTransaction.user_id))
        ).filter(PointsTransaction.created_at >= self.since).scalar() or 0

        issued = db.session.query(func.coalesce(func.sum(PointsTransaction.delta), 0)).filter(
            PointsTransaction.created_at >= self.since,
            PointsTransaction.delta > 0,
        ).scalar()
        redeemed = db.session.query(func.coalesce(func.sum(PointsTransaction.delta), 0)).filter(
            PointsTransaction.created_at >= self.since,
            PointsTransaction.type == TransactionType.REDEEMED.value,
        ).scalar()

        cogs, points = self._redemption_totals(self.since)
        return {
            'total_users': total_users,
            'active_users': active_users,
            'total_points_issued': int(issued),
            'total_points_redeemed': abs(int(redeemed)),
            'current_points_balance': int(current_balance),
            'total_cogs': float(cogs),
            'giveback_percentage': round(float(giveback_percentage(cogs, points)), 2),
        }

    # ==================== TIERS ====================

    def get_tier_distribution(self) -> Dict[str, int]:
        counts = dict(
            db.session.query(LoyaltyProfile.tier, func.count(LoyaltyProfile.user_id))
            .group_by(LoyaltyProfile.tier)
            .all()
        )
        return {tier: counts.get(tier, 0) for tier in TIER_ORDER}

    # ==================== REDEMPTIONS ====================

    def get_redemption_stats(self) -> Dict[str, Any]:
        rows = (
            db.session.query(
                UserRedemption.reward_id,
                UserRedemption.reward_name,
                func.count(UserRedemption.id).label('count'),
                func.coalesce(func.sum(UserRedemption.points_redeemed), 0),
                func.coalesce(func.sum(UserRedemption.estimated_cogs_value), 0),
            )
            .filter(UserRedemption.created_at >= self.since)
            .group_by(UserRedemption.reward_id, UserRedemption.reward_name)
            .order_by(func.count(UserRedemption.id).desc())
            .all()
        )
        top_rewards = [
            {
                'reward_id': reward_id,
                'reward_name': reward_name,
                'count': count,
                'total_points': int(points),
                'total_cogs': float(to_decimal(cogs)),
            }
            for reward_id, reward_name, count, points, cogs in rows
        ]
        return {
            'total': sum(r['count'] for r in top_rewards),
            'total_points': sum(r['total_points'] for r in top_rewards),
            'total_cogs': round(sum(r['total_cogs'] for r in top_rewards), 2),
            'top_rewards': top_rewards[:10],
        }

    # ==================== SPINS ====================

    def get_spin_stats(self) -> Dict[str, Any]:
        spins = SpinHistory.query.filter(SpinHistory.spun_at >= self.since).all()
        by_result: Dict[str, int] = {}
        by_tier: Dict[str, int] = {}
        points_awarded = 0
        total_cogs = Decimal('0')
        for spin in spins:
            by_result[spin.result] = by_result.get(spin.result, 0) + 1
            by_tier[spin.user_tier] = by_tier.get(spin.user_tier, 0) + 1
            if spin.result == 'points':
                points_awarded += spin.value
            total_cogs += to_decimal(spin.cogs_value)
        return {
            'total': len(spins),
            'points_awarded': points_awarded,
            'total_cogs': float(total_cogs),
            'today_cogs': float(daily_spin_cogs(db.session, self.now)),
            'by_result': by_result,
            'by_tier': by_tier,
        }

    # ==================== COGS ====================

    def get_cogs_analysis(self) -> Dict[str, Any]:
        windows = OrderedDict([
            ('last_30_days', self.now - timedelta(days=30)),
            ('last_7_days', self.now - timedelta(days=7)),
            ('today', start_of_day(self.now)),
        ])
        analysis = {}
        for name, since in windows.items():
            cogs, points = self._redemption_totals(since)
            analysis[name] = self._cogs_summary(cogs, points)
        analysis['daily'] = self._daily_breakdown()
        return analysis

    def _daily_breakdown(self) -> List[Dict[str, Any]]:
        buckets: Dict[str, List] = OrderedDict()
        first_day = start_of_day(self.since)
        for offset in range(self.days + 1):
            day = (first_day + timedelta(days=offset)).date().isoformat()
            buckets[day] = [Decimal('0'), 0]

        redemptions = UserRedemption.query.filter(UserRedemption.created_at >= first_day).all()
        for redemption in redemptions:
            bucket = buckets.get(redemption.created_at.date().isoformat())
            if bucket is not None:
                bucket[0] += to_decimal(redemption.estimated_cogs_value)
                bucket[1] += redemption.points_redeemed

        return [
            {'date': day, **self._cogs_summary(cogs, points)}
            for day, (cogs, points) in buckets.items()
        ]

    def _redemption_totals(self, since: datetime):
        return window_totals(db.session, since)

    @staticmethod
    def _cogs_summary(cogs: Decimal, points: int) -> Dict[str, Any]:
        return {
            'total_cogs': float(cogs),
            'points_redeemed': points,
            'giveback_percentage': round(float(giveback_percentage(cogs, points)), 2),
        }


@cache.memoize(timeout=ANALYTICS_CACHE_SECONDS)
def get_analytics(days: int = 30) -> Dict[str, Any]:
    return AnalyticsService(days=days).build()
