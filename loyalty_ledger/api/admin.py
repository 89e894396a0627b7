"""
Admin API endpoints.

Handles:
- Manual points adjustments
- Admin elevation
- Program analytics
- Manual birthday run
- Ledger consistency report
"""
from datetime import date

from flask import Blueprint, g, jsonify, request

from ..middleware.auth import require_admin
from ..services.admin_service import AdminService
from ..services.analytics_service import clamp_days, get_analytics
from ..services.birthday_service import BirthdayService
from ..utils.cache import invalidate_analytics
from ..utils.exceptions import InvalidArgumentError

admin_bp = Blueprint('admin', __name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@admin_bp.route('/adjust-points', methods=['POST'])
@require_admin
def adjust_points():
    """
    Apply a signed balance correction.

    JSON body:
        target_user_id: Member uid (required)
        points_delta: Non-zero, |delta| <= 10000 (required)
        reason: Why (required)
        metadata: Optional
    """
    data = _json_body()
    result = AdminService(g.uid, g.claims).adjust_points(
        data.get('target_user_id'),
        data.get('points_delta'),
        data.get('reason'),
        metadata=data.get('metadata'),
    )
    return jsonify(result)


@admin_bp.route('/elevate', methods=['POST'])
@require_admin
def elevate_user():
    data = _json_body()
    return jsonify(AdminService(g.uid, g.claims).elevate_user_to_admin(data.get('target_uid')))


@admin_bp.route('/analytics', methods=['GET'])
@require_admin
def analytics():
    """
    Query params:
        days: Period length, clamped to 1..365 (default 30)
    """
    return jsonify(get_analytics(clamp_days(request.args.get('days', 30))))


@admin_bp.route('/birthday/run', methods=['POST'])
@require_admin
def run_birthday_job():
    """
    JSON body:
        date: YYYY-MM-DD to run for (default today)
    """
    data = _json_body()
    run_date = None
    if data.get('date'):
        try:
            run_date = date.fromisoformat(str(data['date']))
        except ValueError:
            raise InvalidArgumentError('date must be YYYY-MM-DD', 'date')

    summary = BirthdayService().run(run_date)
    invalidate_analytics()
    return jsonify(summary)


@admin_bp.route('/ledger/verify', methods=['GET'])
@require_admin
def verify_ledger():
    mismatches = AdminService(g.uid, g.claims).verify_ledger(request.args.get('user_id'))
    return jsonify({'consistent': not mismatches, 'mismatches': mismatches})
