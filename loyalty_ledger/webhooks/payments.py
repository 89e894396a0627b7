"""
Payment webhook handlers.

payment.succeeded awards points for a completed order:
    points = floor(floor(dollars * POINTS_PER_DOLLAR) * tier multiplier)

Redelivery of the same order id is acknowledged without awarding twice.
"""
from flask import Blueprint, current_app, jsonify, request

from ..services.points_service import PointsService
from ..utils.errors import bad_request
from .signature import require_payment_signature

payments_webhook_bp = Blueprint('payments_webhook', __name__)


def _field(data: dict, snake: str, camel: str):
    """Providers differ on key style; accept either."""
    value = data.get(snake)
    return value if value is not None else data.get(camel)


@payments_webhook_bp.route('/succeeded', methods=['POST'])
@require_payment_signature
def payment_succeeded():
    """
    JSON body:
        customer_id / customerId: Member uid (required)
        amount_cents / amountCents: Charged amount in cents
        currency: ISO code, only usd earns
        order_id / orderId: Idempotency key (required)
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request('Request body must be a JSON object')

    order_id = _field(data, 'order_id', 'orderId')
    current_app.logger.info(f"Payment succeeded webhook for order {order_id}")

    result = PointsService().award_for_payment(
        _field(data, 'customer_id', 'customerId'),
        _field(data, 'amount_cents', 'amountCents'),
        data.get('currency'),
        order_id,
    )
    return jsonify(result)
