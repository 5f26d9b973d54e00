"""
Periodic expiry sweep. Runs from the check_discount_expiry management
command, never on the pricing path.
"""
import logging
import math
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from discounts import DiscountEventType
from discounts.cache import invalidate_discount_cache
from discounts.events import record_discount_event

logger = logging.getLogger(__name__)

EXPIRY_WARNING_DAYS = getattr(settings, 'DISCOUNT_EXPIRY_WARNING_DAYS', 3)


def deactivate_expired_discounts(now=None):
    """Switch off live discounts whose end date has passed and record EXPIRED for each."""
    from discounts.models import Discount

    now = now or timezone.now()
    expired = list(Discount.live_objects.filter(is_active=True, end_date__lt=now))

    for discount in expired:
        with transaction.atomic():
            discount.is_active = False
            discount.save(update_fields=['is_active', 'updated_at'])
            record_discount_event(
                DiscountEventType.EXPIRED,
                discount,
                expired_at=now.isoformat(),
            )

    if expired:
        invalidate_discount_cache()
        logger.info(f"Deactivated {len(expired)} expired discounts")
    return expired


def days_until(end_date, now):
    """Whole days left, rounded up, so a discount ending later today reports 1."""
    seconds = (end_date - now).total_seconds()
    return max(1, math.ceil(seconds / 86400))


def notify_soon_expiring_discounts(now=None, warning_days=None):
    """
    Record SOON_EXPIRING for live discounts ending within `warning_days`.
    A discount is reported at most once per day.
    """
    from discounts.models import Discount, DiscountEvent

    now = now or timezone.now()
    warning_days = warning_days or EXPIRY_WARNING_DAYS

    recently_notified = DiscountEvent.objects.filter(
        event_type=DiscountEventType.SOON_EXPIRING,
        created_at__gte=now - timedelta(days=1),
    ).values('discount_id')

    soon_expiring = Discount.live_objects.filter(
        is_active=True,
        end_date__gt=now,
        end_date__lte=now + timedelta(days=warning_days),
    ).exclude(
        id__in=recently_notified
    )

    notified = []
    for discount in soon_expiring:
        record_discount_event(
            DiscountEventType.SOON_EXPIRING,
            discount,
            days_until_expiration=days_until(discount.end_date, now),
        )
        notified.append(discount)

    if notified:
        logger.info(f"Recorded expiry warnings for {len(notified)} discounts")
    return notified
