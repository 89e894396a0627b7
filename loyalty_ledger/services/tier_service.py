"""
Tier calculation.

Tiers depend only on lifetime points, which never go down, so a member can
only ever move up the ladder.
"""
from ..utils.policy import TIER_ORDER, TIER_THRESHOLDS


def calculate_tier(lifetime_points: int) -> str:
    """Highest tier whose threshold ``lifetime_points`` has reached."""
    current = TIER_ORDER[0]
    for tier in TIER_ORDER:
        if lifetime_points >= TIER_THRESHOLDS[tier]:
            current = tier
    return current


def tier_rank(tier: str) -> int:
    """Position in the hierarchy; unknown tiers rank below bronze."""
    try:
        return TIER_ORDER.index(tier)
    except ValueError:
        return -1


def meets_tier_requirement(user_tier: str, allowed_tiers) -> bool:
    """
    True if ``user_tier`` is at or above the lowest tier in ``allowed_tiers``.
    An empty restriction list admits everyone.
    """
    if not allowed_tiers:
        return True
    ranks = [tier_rank(t) for t in allowed_tiers if tier_rank(t) >= 0]
    if not ranks:
        return True
    return tier_rank(user_tier) >= min(ranks)


def next_tier_progress(lifetime_points: int) -> dict:
    """Points still needed for the next tier, or None at the top."""
    current = calculate_tier(lifetime_points)
    index = tier_rank(current)
    if index + 1 >= len(TIER_ORDER):
        return {'current_tier': current, 'next_tier': None, 'points_needed': 0}
    upcoming = TIER_ORDER[index + 1]
    return {
        'current_tier': current,
        'next_tier': upcoming,
        'points_needed': TIER_THRESHOLDS[upcoming] - lifetime_points,
    }
