"""
Transaction Ledger.

Append-only log of every points movement. ``apply_points_delta`` is the one
place where a balance changes: it writes the ledger entry, moves the
profile's balance and lifetime points, re-derives the tier and records any
tier transition as a zero-delta entry.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from ..models import LoyaltyProfile, PointsTransaction, TransactionType
from ..utils.exceptions import InsufficientPointsError
from .tier_service import calculate_tier, tier_rank


class TransactionLedger:
    """Reads and appends PointsTransaction rows."""

    def __init__(self, session):
        self.session = session

    def append(
        self,
        user_id: str,
        delta: int,
        tx_type: str,
        description: str,
        order_id: str = None,
        admin_id: str = None,
        metadata: Dict[str, Any] = None,
    ) -> PointsTransaction:
        """Write one entry and flush so callers can reference its id."""
        entry = PointsTransaction(
            user_id=user_id,
            delta=delta,
            type=tx_type.value if isinstance(tx_type, TransactionType) else tx_type,
            description=description,
            order_id=order_id,
            admin_id=admin_id,
            meta=metadata or {},
            created_at=datetime.utcnow(),
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def find_earned_for_order(self, order_id: str) -> Optional[PointsTransaction]:
        return (
            self.session.query(PointsTransaction)
            .filter_by(order_id=order_id, type=TransactionType.EARNED.value)
            .first()
        )

    def entries_for(self, user_id: str) -> List[PointsTransaction]:
        """All of a user's entries in replay order."""
        return (
            self.session.query(PointsTransaction)
            .filter_by(user_id=user_id)
            .order_by(PointsTransaction.created_at, PointsTransaction.id)
            .all()
        )

    def replay_balance(self, user_id: str) -> int:
        balance = 0
        for entry in self.entries_for(user_id):
            balance += entry.delta
        return balance

    def history(
        self,
        user_id: str,
        page: int = 1,
        per_page: int = 20,
        tx_type: str = None,
        start_date: date = None,
        end_date: date = None,
    ):
        """Newest-first page of a user's ledger. ``end_date`` is inclusive."""
        query = PointsTransaction.query.filter_by(user_id=user_id)
        if tx_type:
            query = query.filter(PointsTransaction.type == tx_type)
        if start_date:
            query = query.filter(PointsTransaction.created_at >= datetime.combine(start_date, time.min))
        if end_date:
            query = query.filter(
                PointsTransaction.created_at < datetime.combine(end_date + timedelta(days=1), time.min)
            )
        query = query.order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        return query.paginate(page=page, per_page=per_page, error_out=False)

    def verify(self, user_id: str = None) -> List[Dict[str, Any]]:
        """
        Compare every profile balance with its replayed ledger.

        Returns one row per mismatch; an empty list means the books balance.
        """
        sums = self.session.query(
            PointsTransaction.user_id,
            func.coalesce(func.sum(PointsTransaction.delta), 0),
        ).group_by(PointsTransaction.user_id)
        profiles = self.session.query(LoyaltyProfile)
        if user_id:
            sums = sums.filter(PointsTransaction.user_id == user_id)
            profiles = profiles.filter(LoyaltyProfile.user_id == user_id)

        ledger_totals = {uid: int(total) for uid, total in sums.all()}
        mismatches = []
        for profile in profiles.all():
            replayed = ledger_totals.pop(profile.user_id, 0)
            if replayed != profile.points:
                mismatches.append({
                    'user_id': profile.user_id,
                    'profile_points': profile.points,
                    'ledger_points': replayed,
                })
        # Ledger rows for users that have no profile at all
        for uid, total in ledger_totals.items():
            if total != 0:
                mismatches.append({'user_id': uid, 'profile_points': None, 'ledger_points': total})
        return mismatches


@dataclass
class PointsChange:
    """Outcome of a single balance mutation."""
    entry: PointsTransaction
    previous_balance: int
    new_balance: int
    applied_delta: int
    previous_tier: str
    new_tier: str
    new_lifetime_points: int
    tier_entry: Optional[PointsTransaction] = None

    @property
    def tier_changed(self) -> bool:
        return self.previous_tier != self.new_tier


def apply_points_delta(
    uow,
    profile: LoyaltyProfile,
    delta: int,
    tx_type,
    description: str,
    order_id: str = None,
    admin_id: str = None,
    metadata: Dict[str, Any] = None,
    floor_at_zero: bool = False,
    counts_toward_lifetime: bool = True,
    tier_note: str = None,
) -> PointsChange:
    """
    Move a profile's balance by ``delta`` inside the caller's unit of work.

    With ``floor_at_zero`` the balance stops at zero and the ledger records
    the change actually applied; otherwise going negative raises
    InsufficientPointsError. Lifetime points only grow, and only from
    positive changes that count toward tier.
    """
    previous_balance = profile.points
    new_balance = previous_balance + delta
    if new_balance < 0:
        if not floor_at_zero:
            raise InsufficientPointsError(previous_balance, -delta)
        new_balance = 0
    applied_delta = new_balance - previous_balance

    new_lifetime = profile.lifetime_points
    if applied_delta > 0 and counts_toward_lifetime:
        new_lifetime += applied_delta

    previous_tier = profile.tier
    new_tier = calculate_tier(new_lifetime)

    entry = uow.ledger.append(
        profile.user_id,
        applied_delta,
        tx_type,
        description,
        order_id=order_id,
        admin_id=admin_id,
        metadata=metadata,
    )
    uow.profiles.update(profile, points=new_balance, lifetime_points=new_lifetime, tier=new_tier)

    tier_entry = None
    if new_tier != previous_tier:
        verb = 'upgraded' if tier_rank(new_tier) > tier_rank(previous_tier) else 'changed'
        text = f"Tier {verb} to {new_tier}"
        if tier_note:
            text = f"{text} ({tier_note})"
        tier_entry = uow.ledger.append(
            profile.user_id,
            0,
            tx_type,
            text,
            admin_id=admin_id,
            metadata={'tier_change': {'from': previous_tier, 'to': new_tier}},
        )

    return PointsChange(
        entry=entry,
        previous_balance=previous_balance,
        new_balance=new_balance,
        applied_delta=applied_delta,
        previous_tier=previous_tier,
        new_tier=new_tier,
        new_lifetime_points=new_lifetime,
        tier_entry=tier_entry,
    )
