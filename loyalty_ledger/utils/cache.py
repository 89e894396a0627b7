"""
Cache utilities for the loyalty ledger.

Analytics rollups are memoized here so the admin dashboard stays off the hot
path. Uses Flask-Caching with Redis when REDIS_URL is reachable and falls
back to an in-process SimpleCache otherwise.

Usage:
    from loyalty_ledger.utils.cache import cache

    @cache.memoize(timeout=300)
    def expensive_rollup(days):
        ...

Environment Variables:
    REDIS_URL: Redis connection URL (e.g., redis://localhost:6379/0)
"""
import os
import logging
from flask_caching import Cache

logger = logging.getLogger(__name__)

# Global cache instance - initialized in init_cache()
cache = Cache()

DEFAULT_TIMEOUT = 300


def init_cache(app):
    """
    Initialize Flask-Caching with Redis or fall back to a simple cache.

    An explicit CACHE_TYPE in the app config (NullCache in tests) wins.

    Returns:
        bool: True if Redis connected, False otherwise
    """
    if app.config.get('CACHE_TYPE'):
        app.config.setdefault('CACHE_DEFAULT_TIMEOUT', DEFAULT_TIMEOUT)
        cache.init_app(app)
        logger.info('[Loyalty] Using configured cache: %s', app.config['CACHE_TYPE'])
        return False

    redis_url = os.getenv('REDIS_URL')

    if redis_url:
        try:
            import redis
            r = redis.from_url(redis_url, socket_connect_timeout=2)
            r.ping()

            app.config['CACHE_TYPE'] = 'RedisCache'
            app.config['CACHE_REDIS_URL'] = redis_url
            app.config['CACHE_DEFAULT_TIMEOUT'] = DEFAULT_TIMEOUT
            app.config['CACHE_KEY_PREFIX'] = 'loyalty:'

            cache.init_app(app)
            logger.info('[Loyalty] Redis cache connected: %s', redis_url.split('@')[-1])
            return True

        except Exception as e:
            logger.warning('[Loyalty] Redis unavailable (%s), using simple cache', str(e))

    app.config['CACHE_TYPE'] = 'SimpleCache'
    app.config['CACHE_DEFAULT_TIMEOUT'] = DEFAULT_TIMEOUT

    cache.init_app(app)
    logger.info('[Loyalty] Using simple in-memory cache (no Redis)')
    return False


def invalidate_analytics():
    """Drop memoized analytics after a bulk change (catalog seed, birthday run)."""
    from ..services.analytics_service import get_analytics
    try:
        cache.delete_memoized(get_analytics)
    except Exception as e:
        logger.warning('Analytics cache invalidation failed: %s', e)
