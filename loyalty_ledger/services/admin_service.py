"""
Admin Adjustment Interface.

Privileged balance corrections and admin elevation. Both write an AdminLog
entry in addition to any ledger entries.
"""
from datetime import datetime
from typing import Any, Dict, List

from flask import current_app

from ..models import AdminAction, AdminLog, TransactionType
from ..utils.exceptions import InvalidArgumentError, NotFoundError, PermissionDeniedError
from ..utils.policy import MAX_ADMIN_ADJUSTMENT
from ..utils.validation import optional_dict, require_int, require_string
from .identity_gateway import get_identity_gateway, has_admin_claims
from .ledger import apply_points_delta
from .rate_limiter import enforce_rate_limit
from .unit_of_work import UnitOfWork


class AdminService:
    """
    Usage:
        service = AdminService(admin_id='admin-uid')
        service.adjust_points('user-1', -50, reason='Refunded order 1001')
    """

    def __init__(self, admin_id: str, claims: Dict[str, Any] = None):
        self.admin_id = admin_id
        self.claims = claims or {}

    def _require_admin(self, trust_claims: bool = False) -> None:
        if trust_claims and has_admin_claims(self.claims):
            return
        if not get_identity_gateway().is_admin(self.admin_id):
            raise PermissionDeniedError('Admin privileges required')

    def adjust_points(
        self,
        target_user_id: str,
        points_delta: int,
        reason: str,
        metadata: Dict[str, Any] = None,
    ) -> Dict[str, Any]:
        """
        Apply a signed correction. The balance stops at zero; the ledger entry
        records the change actually applied.
        """
        self._require_admin()

        target_user_id = require_string(target_user_id, 'target_user_id')
        points_delta = require_int(
            points_delta, 'points_delta', minimum=-MAX_ADMIN_ADJUSTMENT, maximum=MAX_ADMIN_ADJUSTMENT
        )
        if points_delta == 0:
            raise InvalidArgumentError('points_delta must be non-zero', 'points_delta')
        reason = require_string(reason, 'reason', max_length=500)
        metadata = optional_dict(metadata)

        if not get_identity_gateway().user_exists(target_user_id):
            raise NotFoundError('User', target_user_id)

        def work(uow):
            profile, _ = uow.profiles.get_or_create(target_user_id)
            change = apply_points_delta(
                uow,
                profile,
                points_delta,
                TransactionType.ADMIN_ADJUSTMENT,
                f"Admin adjustment: {reason}",
                admin_id=self.admin_id,
                metadata={
                    **metadata,
                    'reason': reason,
                    'admin_id': self.admin_id,
                    'original_balance': profile.points,
                    'requested_delta': points_delta,
                },
                floor_at_zero=True,
                tier_note='admin adjustment',
            )
            uow.session.add(AdminLog(
                action=AdminAction.POINTS_ADJUSTMENT.value,
                admin_id=self.admin_id,
                target_user_id=target_user_id,
                details={
                    'points_delta': points_delta,
                    'applied_delta': change.applied_delta,
                    'reason': reason,
                    'previous_balance': change.previous_balance,
                    'new_balance': change.new_balance,
                    'tier_changed': change.tier_changed,
                    'transaction_id': change.entry.id,
                },
                created_at=datetime.utcnow(),
            ))
            return {
                'success': True,
                'transaction_id': change.entry.id,
                'previous_balance': change.previous_balance,
                'new_balance': change.new_balance,
                'applied_delta': change.applied_delta,
                'new_tier': change.new_tier,
                'tier_changed': change.tier_changed,
            }

        result = UnitOfWork().run(work)
        current_app.logger.info(
            f"Admin {self.admin_id} adjusted {target_user_id} by {result['applied_delta']} "
            f"(requested {points_delta}): {reason}"
        )
        return result

    def elevate_user_to_admin(self, target_uid: str) -> Dict[str, Any]:
        self._require_admin(trust_claims=True)

        target_uid = require_string(target_uid, 'target_uid', min_length=6, max_length=128)

        enforce_rate_limit('elevateUserToAdmin', self.admin_id)

        identity = get_identity_gateway()
        user = identity.get_user(target_uid)
        if user is None:
            raise NotFoundError('User', target_uid)

        claims = identity.set_custom_claims(target_uid, {'admin': True, 'role': 'admin'})

        def work(uow):
            uow.session.add(AdminLog(
                action=AdminAction.ELEVATE_USER_TO_ADMIN.value,
                admin_id=self.admin_id,
                target_user_id=target_uid,
                details={
                    'previous_claims': user.get('custom_claims') or {},
                    'new_claims': claims,
                },
                created_at=datetime.utcnow(),
            ))

        UnitOfWork().run(work)
        current_app.logger.info(f"Admin {self.admin_id} elevated {target_uid} to admin")
        return {'success': True, 'target_uid': target_uid, 'custom_claims': claims}

    def verify_ledger(self, user_id: str = None) -> List[Dict[str, Any]]:
        self._require_admin()
        return UnitOfWork().ledger.verify(user_id)
