"""
Tests for per-key rate limiting.
"""
import time

import pytest

from loyalty_ledger.services.rate_limiter import RateLimiter, enforce_rate_limit, get_rate_limiter
from loyalty_ledger.utils.exceptions import ResourceExhaustedError


class TestRateLimiter:
    """Tests for RateLimiter.allow."""

    def test_allows_up_to_max_requests(self):
        limiter = RateLimiter('memory://')
        results = [limiter.allow('earnPoints:user-1', 3, 60000) for _ in range(4)]
        assert results == [True, True, True, False]

    def test_keys_are_independent(self):
        limiter = RateLimiter('memory://')
        assert limiter.allow('earnPoints:user-1', 1, 60000) is True
        assert limiter.allow('earnPoints:user-1', 1, 60000) is False
        assert limiter.allow('earnPoints:user-2', 1, 60000) is True
        assert limiter.allow('redeemPoints:user-1', 1, 60000) is True

    def test_window_resets_after_expiry(self):
        limiter = RateLimiter('memory://')
        assert limiter.allow('spinWheel:user-1', 1, 1000) is True
        assert limiter.allow('spinWheel:user-1', 1, 1000) is False
        time.sleep(1.2)
        assert limiter.allow('spinWheel:user-1', 1, 1000) is True

    def test_reset_clears_counters(self):
        limiter = RateLimiter('memory://')
        limiter.allow('validateRedemption:staff', 1, 60000)
        limiter.reset()
        assert limiter.allow('validateRedemption:staff', 1, 60000) is True


class TestEnforceRateLimit:
    """Tests for enforce_rate_limit with the configured budgets."""

    def test_eleventh_earn_in_a_minute_is_rejected(self, app):
        with app.app_context():
            for _ in range(10):
                enforce_rate_limit('earnPoints', 'user-alice')

            with pytest.raises(ResourceExhaustedError):
                enforce_rate_limit('earnPoints', 'user-alice')

    def test_limiter_is_per_app(self, app):
        with app.app_context():
            assert get_rate_limiter().storage_uri == 'memory://'
