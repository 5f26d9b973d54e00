"""
Unit tests for discount caching module.
These tests don't require database or Redis - they use Django's in-memory cache.

One cache entry holds the live discount ids for every dealer.
"""
from unittest import mock

from django.core.cache import cache
from django.test import SimpleTestCase, override_settings

from discounts.cache import (
    ACTIVE_DISCOUNTS_CACHE_KEY,
    get_cached_active_discount_ids,
    cache_active_discount_ids,
    invalidate_discount_cache,
)


# Use in-memory cache for all tests
TEST_CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'test-cache',
        'KEY_PREFIX': 'dealerhub',
    }
}


@override_settings(CACHES=TEST_CACHES)
class DiscountCacheUnitTest(SimpleTestCase):
    """Unit tests for discount catalog caching - no database required."""

    def setUp(self):
        """Clear cache before each test."""
        cache.clear()

    def tearDown(self):
        """Clear cache after each test."""
        cache.clear()

    def test_cache_key_is_constant(self):
        """Test that the cache key does not depend on the dealer."""
        self.assertEqual(ACTIVE_DISCOUNTS_CACHE_KEY, 'discounts:active')

    def test_cache_miss_returns_none(self):
        """Test that an empty cache reports a miss, not an empty list."""
        self.assertIsNone(get_cached_active_discount_ids())

    def test_cache_and_retrieve_ids(self):
        """Test caching and retrieving discount ids."""
        ids = ['a1', 'b2', 'c3']

        self.assertTrue(cache_active_discount_ids(ids))
        self.assertEqual(get_cached_active_discount_ids(), ids)

    def test_empty_list_is_a_hit(self):
        """Test that 'no live discounts' is cached too."""
        cache_active_discount_ids([])

        self.assertEqual(get_cached_active_discount_ids(), [])

    def test_invalidate_clears_entry(self):
        """Test that invalidation removes the cached ids."""
        cache_active_discount_ids(['a1'])

        self.assertTrue(invalidate_discount_cache())
        self.assertIsNone(get_cached_active_discount_ids())

    def test_read_error_is_a_miss(self):
        """Test that a broken cache backend never breaks pricing."""
        with mock.patch('discounts.cache.cache.get', side_effect=ConnectionError('down')):
            self.assertIsNone(get_cached_active_discount_ids())

    def test_write_error_reported(self):
        """Test that a failed cache write returns False instead of raising."""
        with mock.patch('discounts.cache.cache.set', side_effect=ConnectionError('down')):
            self.assertFalse(cache_active_discount_ids(['a1']))

    def test_invalidate_error_reported(self):
        with mock.patch('discounts.cache.cache.delete', side_effect=ConnectionError('down')):
            self.assertFalse(invalidate_discount_cache())
