"""
Profile Store: the only writer of LoyaltyProfile rows.

Bound to the unit of work's session so profile changes commit together with
the ledger entries that explain them.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from ..models import LoyaltyProfile, LoyaltyTier
from ..utils.codes import generate_referral_code
from ..utils.exceptions import InternalError, NotFoundError

MAX_CODE_ATTEMPTS = 5

_UPDATABLE_FIELDS = {
    'points', 'lifetime_points', 'tier', 'referral_code', 'referred_by',
    'birthday', 'last_birthday_bonus_at', 'last_spin_at', 'lifetime_spins',
}


class ProfileStore:
    """CRUD over loyalty profiles."""

    def __init__(self, session):
        self.session = session

    def get(self, user_id: str) -> Optional[LoyaltyProfile]:
        return self.session.get(LoyaltyProfile, user_id)

    def get_or_create(self, user_id: str) -> Tuple[LoyaltyProfile, bool]:
        """
        Return the user's profile, creating a zero-balance bronze one if
        missing. A concurrent create surfaces as an IntegrityError on flush,
        which the unit of work retries.
        """
        profile = self.get(user_id)
        if profile is not None:
            return profile, False

        now = datetime.utcnow()
        profile = LoyaltyProfile(
            user_id=user_id,
            points=0,
            lifetime_points=0,
            tier=LoyaltyTier.BRONZE.value,
            lifetime_spins=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(profile)
        self.session.flush()
        return profile, True

    def update(self, profile, **fields) -> LoyaltyProfile:
        """Merge ``fields`` into the profile and stamp ``updated_at``."""
        if isinstance(profile, str):
            user_id = profile
            profile = self.get(user_id)
            if profile is None:
                raise NotFoundError('Loyalty profile', user_id)

        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update profile fields: {', '.join(sorted(unknown))}")

        for name, value in fields.items():
            setattr(profile, name, value)
        profile.updated_at = datetime.utcnow()
        return profile

    def find_by_referral_code(self, code: str) -> Optional[LoyaltyProfile]:
        return self.session.query(LoyaltyProfile).filter_by(referral_code=code).first()

    def ensure_referral_code(self, profile: LoyaltyProfile) -> Tuple[str, bool]:
        """Return the profile's referral code, generating one on first use."""
        if profile.referral_code:
            return profile.referral_code, False

        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_referral_code(profile.user_id)
            if self.find_by_referral_code(code) is None:
                self.update(profile, referral_code=code)
                return code, True

        raise InternalError('Could not generate a unique referral code')

    def with_birthday(self, month_days: List[str]) -> List[LoyaltyProfile]:
        return (
            self.session.query(LoyaltyProfile)
            .filter(LoyaltyProfile.birthday.in_(month_days))
            .order_by(LoyaltyProfile.user_id)
            .all()
        )
