"""
Per-key request admission control.

Backed by the ``limits`` storage and strategy layer (the engine underneath
Flask-Limiter). The window opens at a key's first hit and resets once it
expires, so each ``"<operation>:<id>"`` key gets ``max_requests`` per window.

RATELIMIT_STORAGE_URI chooses the store:
    memory://                process-local; limits are per instance
    redis://host:6379/0      shared; limits hold across instances
"""
import logging
import math

from flask import current_app
from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from ..utils.exceptions import ResourceExhaustedError
from ..utils.policy import RATE_LIMITS

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'loyalty_rate_limiter'


class RateLimiter:
    """allow(key, max_requests, window_ms) -> bool"""

    def __init__(self, storage_uri: str = 'memory://'):
        self.storage_uri = storage_uri
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)

    def allow(self, key: str, max_requests: int, window_ms: int) -> bool:
        window_seconds = max(1, math.ceil(window_ms / 1000))
        item = RateLimitItemPerSecond(max_requests, window_seconds)
        return self.strategy.hit(item, key)

    def reset(self) -> None:
        self.storage.reset()


def init_rate_limiter(app) -> RateLimiter:
    uri = app.config.get('RATELIMIT_STORAGE_URI') or 'memory://'
    limiter = RateLimiter(uri)
    app.extensions[EXTENSION_KEY] = limiter
    if uri.startswith('memory://'):
        logger.info('Rate limiting uses process-local storage; limits apply per instance')
    else:
        logger.info('Rate limiting uses shared storage: %s', uri.split('@')[-1])
    return limiter


def get_rate_limiter() -> RateLimiter:
    return current_app.extensions[EXTENSION_KEY]


def enforce_rate_limit(operation: str, key_id: str) -> None:
    """Apply the configured budget for ``operation`` to ``key_id``."""
    max_requests, window_ms = RATE_LIMITS[operation]
    key = f"{operation}:{key_id}"
    if not get_rate_limiter().allow(key, max_requests, window_ms):
        current_app.logger.warning(f"Rate limit exceeded for {key}")
        raise ResourceExhaustedError()
