"""
Payment webhook signature verification.
"""
import base64
import hashlib
import hmac
from functools import wraps

from flask import current_app, request

from ..utils.errors import unauthorized


def verify_payment_signature(data: bytes, signature_header: str, secret: str) -> bool:
    """
    Verify a payment webhook HMAC-SHA256 signature.

    The provider signs the raw body with the shared secret and sends the
    base64 digest in X-Payment-Signature.

    Args:
        data: Raw request body bytes
        signature_header: The X-Payment-Signature header value
        secret: PAYMENT_WEBHOOK_SECRET

    Returns:
        True if signature is valid, False otherwise
    """
    if not secret:
        current_app.logger.warning('No payment webhook secret configured for verification')
        return False

    if not signature_header:
        current_app.logger.warning('No signature header in payment webhook request')
        return False

    computed = base64.b64encode(
        hmac.new(secret.encode('utf-8'), data, hashlib.sha256).digest()
    ).decode('utf-8')

    return hmac.compare_digest(computed, signature_header.strip())


def require_payment_signature(f):
    """
    Decorator that rejects payment webhooks with a missing or bad signature.

    Usage:
        @payments_webhook_bp.route('/succeeded', methods=['POST'])
        @require_payment_signature
        def payment_succeeded():
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        signature = request.headers.get('X-Payment-Signature', '')
        secret = current_app.config.get('PAYMENT_WEBHOOK_SECRET', '')

        if not verify_payment_signature(request.get_data(), signature, secret):
            current_app.logger.warning('Invalid payment webhook signature')
            return unauthorized('Invalid signature')

        return f(*args, **kwargs)

    return decorated_function
