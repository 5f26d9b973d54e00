from datetime import timedelta
from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase, SimpleTestCase, override_settings
from django.utils import timezone

from discounts import DiscountEventType
from discounts.cache import cache_active_discount_ids, get_cached_active_discount_ids
from discounts.expiry import days_until, deactivate_expired_discounts, notify_soon_expiring_discounts
from discounts.factories import DiscountFactory
from discounts.models import DiscountEvent


class DaysUntilTest(SimpleTestCase):

    def test_rounds_up(self):
        now = timezone.now()

        self.assertEqual(days_until(now + timedelta(hours=2), now), 1)
        self.assertEqual(days_until(now + timedelta(days=1, hours=1), now), 2)
        self.assertEqual(days_until(now + timedelta(days=3), now), 3)

    def test_never_below_one(self):
        now = timezone.now()
        self.assertEqual(days_until(now - timedelta(hours=1), now), 1)


class DiscountExpiryTest(TestCase):
    """Test cases for the expiry sweep."""

    def setUp(self):
        cache.clear()
        self.now = timezone.now()

    # ==================== Deactivation Tests ====================

    def test_deactivate_expired_discounts(self):
        """Test that ended discounts are switched off and announced."""
        expired = DiscountFactory(
            start_date=self.now - timedelta(days=10), end_date=self.now - timedelta(minutes=1)
        )
        running = DiscountFactory()

        result = deactivate_expired_discounts(self.now)

        self.assertEqual(result, [expired])
        expired.refresh_from_db()
        running.refresh_from_db()
        self.assertFalse(expired.is_active)
        self.assertTrue(running.is_active)
        self.assertTrue(DiscountEvent.objects.filter(
            discount=expired, event_type=DiscountEventType.EXPIRED
        ).exists())

    def test_deactivate_invalidates_cache(self):
        DiscountFactory(start_date=self.now - timedelta(days=10), end_date=self.now - timedelta(days=1))
        cache_active_discount_ids(['stale'])

        deactivate_expired_discounts(self.now)

        self.assertIsNone(get_cached_active_discount_ids())

    def test_deactivate_skips_deleted_and_already_inactive(self):
        ended = dict(start_date=self.now - timedelta(days=10), end_date=self.now - timedelta(days=1))
        DiscountFactory(is_active=False, **ended)
        DiscountFactory(**ended).soft_delete()

        self.assertEqual(deactivate_expired_discounts(self.now), [])
        self.assertFalse(DiscountEvent.objects.exists())

    # ==================== Warning Tests ====================

    def test_notify_soon_expiring(self):
        """Test that discounts ending within the warning window are reported."""
        soon = DiscountFactory(end_date=self.now + timedelta(days=2))
        DiscountFactory(end_date=self.now + timedelta(days=20))

        result = notify_soon_expiring_discounts(self.now, warning_days=3)

        self.assertEqual(result, [soon])
        event = DiscountEvent.objects.get(discount=soon)
        self.assertEqual(event.event_type, DiscountEventType.SOON_EXPIRING)
        self.assertEqual(event.payload['days_until_expiration'], 2)

    def test_notify_once_per_day(self):
        """Test that a second run on the same day does not repeat the warning."""
        DiscountFactory(end_date=self.now + timedelta(days=1))

        self.assertEqual(len(notify_soon_expiring_discounts(self.now, warning_days=3)), 1)
        self.assertEqual(notify_soon_expiring_discounts(self.now, warning_days=3), [])

    def test_notify_skips_switched_off(self):
        DiscountFactory(end_date=self.now + timedelta(days=1), is_active=False)

        self.assertEqual(notify_soon_expiring_discounts(self.now, warning_days=3), [])

    # ==================== Command Tests ====================

    def test_command_runs_sweep(self):
        expired = DiscountFactory(
            name='Old', start_date=self.now - timedelta(days=10), end_date=self.now - timedelta(days=1)
        )
        DiscountFactory(name='Ending', end_date=self.now + timedelta(days=1))
        out = StringIO()

        call_command('check_discount_expiry', stdout=out)

        output = out.getvalue()
        self.assertIn('Deactivated expired discount: Old', output)
        self.assertIn('Discount ending soon: Ending', output)
        self.assertIn('1 deactivated, 1 ending soon', output)
        expired.refresh_from_db()
        self.assertFalse(expired.is_active)

    @override_settings(DISCOUNT_EXPIRY_CHECK_ENABLED=False)
    def test_command_disabled(self):
        expired = DiscountFactory(start_date=self.now - timedelta(days=10), end_date=self.now - timedelta(days=1))
        out = StringIO()

        call_command('check_discount_expiry', stdout=out)

        self.assertIn('disabled', out.getvalue())
        expired.refresh_from_db()
        self.assertTrue(expired.is_active)

    @override_settings(DISCOUNT_EXPIRY_CHECK_ENABLED=False)
    def test_command_force(self):
        expired = DiscountFactory(start_date=self.now - timedelta(days=10), end_date=self.now - timedelta(days=1))

        call_command('check_discount_expiry', '--force', stdout=StringIO())

        expired.refresh_from_db()
        self.assertFalse(expired.is_active)
