"""
Caching utilities for item listings
Uses Redis in production; falls back to whatever cache backend is configured
"""
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
ITEMS_LIST_CACHE_TTL = 120  # 2 minutes
LOW_STOCK_CACHE_TTL = 180  # 3 minutes

ITEMS_CACHE_PREFIX = "items_list"
LOW_STOCK_CACHE_PREFIX = "items_low_stock"


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def get_cached(prefix, *args, **kwargs):
    """
    Look up a cached payload
    Returns tuple: (cached_data, cache_key)
    """
    cache_key = make_cache_key(prefix, *args, **kwargs)
    try:
        return cache.get(cache_key), cache_key
    except Exception as e:
        logger.warning(f"Cache unavailable, proceeding without cache: {e}")
        return None, cache_key


def set_cached(cache_key, data, ttl):
    try:
        cache.set(cache_key, data, ttl)
        logger.debug(f"Cached {cache_key}")
    except Exception as e:
        logger.warning(f"Could not cache {cache_key}: {e}")


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Uses Redis SCAN when available; other backends are cleared entirely
    """
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")
    except NotImplementedError:
        # Not a Redis backend (local memory cache in development and tests)
        cache.clear()
        logger.debug(f"Cleared local cache for pattern: {pattern}")
        return

    try:
        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def invalidate_items_cache():
    """Invalidate every cached item listing (call after any stock movement)"""
    invalidate_cache_pattern(ITEMS_CACHE_PREFIX)
    invalidate_cache_pattern(LOW_STOCK_CACHE_PREFIX)
