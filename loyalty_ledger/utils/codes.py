"""
Code generators for referral and redemption codes.
"""
import secrets
import string
import time

from .policy import REDEMPTION_CODE_LENGTH

CODE_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_uppercase


def to_base36(number: int) -> str:
    if number == 0:
        return '0'
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return ''.join(reversed(digits))


def random_code(length: int) -> str:
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_redemption_code() -> str:
    """8-character code shown to staff at fulfillment."""
    return random_code(REDEMPTION_CODE_LENGTH)


def generate_referral_code(user_id: str) -> str:
    """
    Build a referral code from the user id prefix, a base36 timestamp and
    random padding, e.g. ``ALIC`` + ``LZ3K9Q1A`` + ``7QX2MB``.
    """
    prefix = ''.join(ch for ch in user_id if ch.isalnum())[:4]
    stamp = to_base36(int(time.time() * 1000))
    return f"{prefix}{stamp}{random_code(6)}".upper()
