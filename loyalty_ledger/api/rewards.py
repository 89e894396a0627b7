"""
Member-facing rewards API.

Handles:
- Earning points
- Redemption and in-store fulfillment (mark used, validate)
- Daily spin wheel
- Referrals and referral codes
- Profile, ledger history, redemption and spin history, reward catalog, birthday
"""
from flask import Blueprint, g, jsonify, request

from ..middleware.auth import is_staff, require_auth, require_self_or_admin
from ..services.birthday_service import BirthdayService
from ..services.points_service import PointsService
from ..services.rate_limiter import enforce_rate_limit
from ..services.redemption_service import RedemptionService
from ..services.referral_service import ReferralService
from ..services.spin_service import SpinService
from ..utils.exceptions import PermissionDeniedError

rewards_bp = Blueprint('rewards', __name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _target_user(data: dict = None) -> str:
    """user_id from the body or query string; defaults to the caller."""
    source = data if data is not None else request.args
    return source.get('user_id') or g.uid


# ==============================================================================
# POINTS
# ==============================================================================

@rewards_bp.route('/earn', methods=['POST'])
@require_auth
def earn_points():
    """
    Credit points to a member.

    JSON body:
        user_id: Member uid (defaults to caller)
        points: 1..10000 (required)
        order_id: Makes the call idempotent per order
        description, metadata: Optional
    """
    data = _json_body()
    user_id = _target_user(data)
    require_self_or_admin(user_id)
    enforce_rate_limit('earnPoints', user_id)

    result = PointsService().earn_points(
        user_id,
        data.get('points'),
        order_id=data.get('order_id'),
        description=data.get('description'),
        metadata=data.get('metadata'),
    )
    return jsonify(result)


@rewards_bp.route('/profile', methods=['GET'])
@require_auth
def get_profile():
    user_id = _target_user()
    require_self_or_admin(user_id)
    return jsonify(PointsService().get_profile(user_id))


@rewards_bp.route('/history', methods=['GET'])
@require_auth
def get_history():
    """
    Paginated ledger, newest first.

    Query params:
        user_id: Member uid (defaults to caller)
        page: Page number (default 1)
        per_page: Items per page (default 20, max 100)
        type: Only entries of this type (earned, redeemed, ...)
        start_date, end_date: Inclusive YYYY-MM-DD range
    """
    user_id = _target_user()
    require_self_or_admin(user_id)
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', 20, type=int)
    return jsonify(PointsService().get_history(
        user_id,
        page=page,
        per_page=per_page,
        tx_type=request.args.get('type') or None,
        start_date=request.args.get('start_date'),
        end_date=request.args.get('end_date'),
    ))


# ==============================================================================
# REDEMPTION
# ==============================================================================

@rewards_bp.route('/catalog', methods=['GET'])
@require_auth
def list_catalog():
    rewards = RedemptionService().list_catalog()
    return jsonify({'rewards': rewards, 'count': len(rewards)})


@rewards_bp.route('/redeem', methods=['POST'])
@require_auth
def redeem_points():
    """
    Spend points on a catalog reward.

    JSON body:
        user_id: Member uid (defaults to caller)
        reward_id: Catalog id (required)
        points: Must equal the reward's points_cost (required)
        description, metadata: Optional

    Returns:
        Redemption code to present in store
    """
    data = _json_body()
    user_id = _target_user(data)
    require_self_or_admin(user_id)
    enforce_rate_limit('redeemPoints', user_id)

    result = RedemptionService().redeem_points(
        user_id,
        data.get('reward_id'),
        data.get('points'),
        description=data.get('description'),
        metadata=data.get('metadata'),
    )
    return jsonify(result)


@rewards_bp.route('/redemptions', methods=['GET'])
@require_auth
def list_redemptions():
    """
    A member's redemption codes, newest first.

    Query params:
        user_id: Member uid (defaults to caller)
        status: active, used or expired
    """
    user_id = _target_user()
    require_self_or_admin(user_id)
    redemptions = RedemptionService().list_redemptions(user_id, status=request.args.get('status') or None)
    return jsonify({'redemptions': redemptions, 'count': len(redemptions)})


@rewards_bp.route('/coupons/mark-used', methods=['POST'])
@require_auth
def mark_coupon_used():
    """
    Staff fulfillment of a redemption code.

    JSON body:
        redemption_code: Code shown by the member (required)
        order_id: Order the reward was applied to
        metadata: Merged into the redemption record
    """
    if not is_staff():
        raise PermissionDeniedError('Staff privileges required')

    data = _json_body()
    enforce_rate_limit('markCouponUsed', g.uid)

    result = RedemptionService().mark_coupon_used(
        data.get('redemption_code'),
        used_by=g.uid,
        order_id=data.get('order_id'),
        metadata=data.get('metadata'),
    )
    return jsonify(result)


@rewards_bp.route('/coupons/validate', methods=['POST'])
@require_auth
def validate_coupon():
    data = _json_body()
    enforce_rate_limit('validateRedemption', g.uid)
    return jsonify(RedemptionService().validate_redemption_code(data.get('redemption_code')))


# ==============================================================================
# SPIN WHEEL
# ==============================================================================

@rewards_bp.route('/spin', methods=['POST'])
@require_auth
def spin_wheel():
    data = _json_body()
    user_id = _target_user(data)
    require_self_or_admin(user_id)
    enforce_rate_limit('spinWheel', user_id)
    return jsonify(SpinService().spin(user_id))


@rewards_bp.route('/spins', methods=['GET'])
@require_auth
def spin_history():
    user_id = _target_user()
    require_self_or_admin(user_id)
    limit = request.args.get('limit', 20, type=int)
    return jsonify(SpinService().get_spin_history(user_id, limit=limit))


# ==============================================================================
# REFERRALS
# ==============================================================================

@rewards_bp.route('/referrals', methods=['POST'])
@require_auth
def process_referral():
    """
    Pay the referral bonus to both members.

    JSON body:
        referrer_user_id: Member who shared the code (required)
        new_user_id: Newly joined member (defaults to caller)
        referral_code: The referrer's code (required)
    """
    data = _json_body()
    new_user_id = data.get('new_user_id') or g.uid
    require_self_or_admin(new_user_id)

    result = ReferralService().process_referral_bonus(
        data.get('referrer_user_id'),
        new_user_id,
        data.get('referral_code'),
    )
    return jsonify(result)


@rewards_bp.route('/referrals/code', methods=['GET'])
@require_auth
def get_referral_code():
    user_id = _target_user()
    require_self_or_admin(user_id)
    return jsonify(ReferralService().get_referral_code(user_id))


# ==============================================================================
# BIRTHDAY
# ==============================================================================

@rewards_bp.route('/birthday', methods=['PUT'])
@require_auth
def set_birthday():
    """
    JSON body:
        user_id: Member uid (defaults to caller)
        month: 1-12 (required)
        day: 1-31 (required)
    """
    data = _json_body()
    user_id = _target_user(data)
    require_self_or_admin(user_id)
    return jsonify(BirthdayService().set_birthday(user_id, data.get('month'), data.get('day')))
