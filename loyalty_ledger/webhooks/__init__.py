"""
Webhook handlers for the loyalty ledger.
Processes payment provider events that award points.
"""
from .signature import verify_payment_signature, require_payment_signature
from .payments import payments_webhook_bp

__all__ = [
    'payments_webhook_bp',
    'verify_payment_signature',
    'require_payment_signature',
]
