"""
Caching service for the discount catalog.

Only the ids of live, switched-on discounts are cached, in a single entry
shared by every dealer. Rows are always re-read by id so usage counts and
date windows are current when an order is priced.
"""
import logging
from typing import Optional, List

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

ACTIVE_DISCOUNTS_CACHE_KEY = 'discounts:active'

# Cache timeout: 5 minutes
CACHE_TIMEOUT = getattr(settings, 'DISCOUNT_CACHE_TIMEOUT', 300)


def get_cached_active_discount_ids() -> Optional[List[str]]:
    """
    Get cached IDs of live discounts.

    Returns:
        List of discount IDs if cached, None otherwise
    """
    try:
        cached_ids = cache.get(ACTIVE_DISCOUNTS_CACHE_KEY)
        if cached_ids is not None:
            logger.debug("Cache HIT for active discounts")
            return cached_ids
        logger.debug("Cache MISS for active discounts")
        return None
    except Exception as e:
        logger.error(f"Cache read error: {str(e)}")
        return None


def cache_active_discount_ids(discount_ids: List[str]) -> bool:
    try:
        cache.set(ACTIVE_DISCOUNTS_CACHE_KEY, discount_ids, timeout=CACHE_TIMEOUT)
        logger.debug(f"Cached {len(discount_ids)} active discounts")
        return True
    except Exception as e:
        logger.error(f"Cache write error: {str(e)}")
        return False


def invalidate_discount_cache() -> bool:
    """
    Clear the discount catalog cache.

    Call this when discounts are created, updated, deleted, restored or
    expired.
    """
    try:
        cache.delete(ACTIVE_DISCOUNTS_CACHE_KEY)
        logger.info("Discount cache invalidated")
        return True
    except Exception as e:
        logger.error(f"Cache invalidation error: {str(e)}")
        return False
