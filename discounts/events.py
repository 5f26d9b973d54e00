"""
Discount domain events.

Every fact is written to the DiscountEvent outbox inside the caller's
transaction and announced through the `discount_event` signal once that
transaction commits. Nothing here formats or delivers notifications.
"""
import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

# Sent with `event` (a DiscountEvent) after the writing transaction commits.
discount_event = Signal()


def build_event_payload(discount, **params):
    payload = {
        'discount_id': str(discount.id),
        'name': discount.name,
        'discount_type': discount.discount_type,
        'discount_value': str(discount.discount_value),
        'end_date': discount.end_date.isoformat() if discount.end_date else None,
    }
    payload.update(params)
    return payload


def record_discount_event(event_type, discount, **params):
    """Write an outbox row for `discount` and schedule the signal."""
    from discounts.models import DiscountEvent

    event = DiscountEvent.objects.create(
        event_type=event_type,
        discount=discount,
        payload=build_event_payload(discount, **params),
    )

    def _send():
        discount_event.send(sender=DiscountEvent, event=event)

    transaction.on_commit(_send)
    logger.info(f"Discount event {event_type} recorded for {discount.name} (ID: {discount.id})")
    return event
