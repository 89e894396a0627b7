"""
Spin Engine: a once-a-day prize wheel.

Odds come from the member's tier table. The day's spin COGS across all
members is capped; an outcome that would cross the cap becomes "nothing".
Every attempt is recorded, losing spins included.
"""
import random
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict

from flask import current_app
from sqlalchemy import func

from ..models import SpinHistory, TransactionType
from ..utils.exceptions import FailedPreconditionError
from ..utils.policy import SPIN_DAILY_COGS_CEILING, SPIN_OUTCOMES, SPIN_PROBABILITIES
from ..utils.validation import require_int, require_string
from .ledger import apply_points_delta
from .redemption_service import start_of_day, to_decimal
from .unit_of_work import UnitOfWork

EXTENSION_KEY = 'loyalty_spin_random'


def init_spin_random(app) -> random.Random:
    seed = app.config.get('SPIN_RANDOM_SEED')
    rng = random.Random(int(seed)) if seed not in (None, '') else random.Random()
    app.extensions[EXTENSION_KEY] = rng
    return rng


def daily_spin_cogs(session, day: datetime) -> Decimal:
    """Spin COGS handed out on the calendar day containing ``day``, all members."""
    start = start_of_day(day)
    total = session.query(func.coalesce(func.sum(SpinHistory.cogs_value), 0)).filter(
        SpinHistory.spun_at >= start,
        SpinHistory.spun_at < start + timedelta(days=1),
    ).scalar()
    return to_decimal(total)


def select_outcome(tier: str, draw: float) -> str:
    """Walk the tier's cumulative table; a draw past the end lands on nothing."""
    cumulative = 0.0
    for outcome, probability in SPIN_PROBABILITIES.get(tier, SPIN_PROBABILITIES['bronze']):
        cumulative += probability
        if draw < cumulative:
            return outcome
    return 'nothing'


class SpinService:
    """
    Usage:
        service = SpinService(rng=random.Random(42))
        result = service.spin('user-1')
    """

    def __init__(self, rng=None):
        self.rng = rng if rng is not None else current_app.extensions[EXTENSION_KEY]

    def spin(self, user_id: str) -> Dict[str, Any]:
        user_id = require_string(user_id, 'user_id')

        def work(uow):
            now = datetime.utcnow()
            today = start_of_day(now)

            latest = (
                uow.session.query(SpinHistory)
                .filter_by(user_id=user_id)
                .order_by(SpinHistory.spun_at.desc())
                .first()
            )
            if latest is not None and latest.spun_at >= today:
                raise FailedPreconditionError('Daily spin limit reached. Come back tomorrow!')

            profile, _ = uow.profiles.get_or_create(user_id)
            tier = profile.tier

            outcome = select_outcome(tier, self.rng.random())
            prize = SPIN_OUTCOMES[outcome]

            if prize['cogs'] > 0:
                spent_today = daily_spin_cogs(uow.session, now)
                if spent_today + prize['cogs'] > SPIN_DAILY_COGS_CEILING:
                    current_app.logger.info(
                        f"Spin budget reached ({spent_today} spent); {outcome} for {user_id} becomes nothing"
                    )
                    outcome = 'nothing'
                    prize = SPIN_OUTCOMES[outcome]

            uow.session.add(SpinHistory(
                user_id=user_id,
                result=prize['result'],
                outcome=outcome,
                value=prize['value'],
                description=prize['description'],
                cogs_value=prize['cogs'],
                user_tier=tier,
                spun_at=now,
            ))

            new_balance = profile.points
            tier_changed = False
            if prize['result'] == 'points':
                change = apply_points_delta(
                    uow,
                    profile,
                    prize['value'],
                    TransactionType.SPIN,
                    f"Spin wheel: {prize['description']}",
                    metadata={'outcome': outcome},
                )
                new_balance = change.new_balance
                tier_changed = change.tier_changed

            uow.profiles.update(
                profile,
                last_spin_at=now,
                lifetime_spins=(profile.lifetime_spins or 0) + 1,
            )

            return {
                'success': True,
                'result': prize['result'],
                'outcome': outcome,
                'value': prize['value'],
                'description': prize['description'],
                'cogs_value': float(prize['cogs']),
                'new_balance': new_balance,
                'tier_changed': tier_changed,
                'next_spin_available': (today + timedelta(days=1)).isoformat(),
            }

        result = UnitOfWork().run(work)
        current_app.logger.info(f"Spin for {user_id}: {result['outcome']}")
        return result

    def get_spin_history(self, user_id: str, limit: int = 20) -> Dict[str, Any]:
        user_id = require_string(user_id, 'user_id')
        limit = require_int(limit, 'limit', minimum=1, maximum=100)
        spins = (
            SpinHistory.query.filter_by(user_id=user_id)
            .order_by(SpinHistory.spun_at.desc(), SpinHistory.id.desc())
            .limit(limit)
            .all()
        )
        latest = spins[0].spun_at if spins else None
        today = start_of_day(datetime.utcnow())
        return {
            'spins': [spin.to_dict() for spin in spins],
            'can_spin_today': latest is None or latest < today,
            'next_spin_available': (today + timedelta(days=1)).isoformat()
            if latest is not None and latest >= today else None,
        }
