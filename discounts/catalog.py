"""
Read side of the discount catalog and the usage counter.

The pricing engine never touches model instances: the catalog is loaded
once per pricing call and handed over as immutable DiscountSnapshot records
whose scope relations are plain id sets.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional

from django.conf import settings
from django.db import connection, transaction, DatabaseError
from django.db.models import Count, F, Q
from django.utils import timezone

from core import EntityStatus
from discounts import DiscountScope
from discounts.cache import get_cached_active_discount_ids, cache_active_discount_ids
from discounts.exceptions import CatalogUnavailable

logger = logging.getLogger(__name__)

CATALOG_TIMEOUT_MS = getattr(settings, 'DISCOUNT_CATALOG_TIMEOUT_MS', 2000)


@dataclass(frozen=True)
class DiscountSnapshot:
    id: uuid.UUID
    name: str
    discount_type: str
    discount_value: Decimal
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    status: str = EntityStatus.ACTIVE
    description: str = ''
    minimum_order_amount: Optional[Decimal] = None
    maximum_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0
    usage_limit_per_customer: Optional[int] = None
    discount_code: Optional[str] = None
    auto_apply: bool = True
    priority: int = 0
    stackable: bool = False
    variant_ids: FrozenSet[uuid.UUID] = frozenset()
    category_ids: FrozenSet[uuid.UUID] = frozenset()
    dealer_ids: FrozenSet[uuid.UUID] = frozenset()

    @property
    def scope(self):
        if self.variant_ids:
            return DiscountScope.VARIANT
        if self.category_ids:
            return DiscountScope.CATEGORY
        return DiscountScope.GENERAL

    @property
    def has_usage_left(self):
        return self.usage_limit is None or self.usage_count < self.usage_limit


def to_snapshot(discount) -> DiscountSnapshot:
    """Freeze a Discount row. Prefetch the three scope relations first."""
    return DiscountSnapshot(
        id=discount.id,
        name=discount.name,
        description=discount.description,
        discount_type=discount.discount_type,
        discount_value=discount.discount_value,
        start_date=discount.start_date,
        end_date=discount.end_date,
        is_active=discount.is_active,
        status=discount.status,
        minimum_order_amount=discount.minimum_order_amount,
        maximum_discount_amount=discount.maximum_discount_amount,
        usage_limit=discount.usage_limit,
        usage_count=discount.usage_count,
        usage_limit_per_customer=discount.usage_limit_per_customer,
        discount_code=discount.discount_code,
        auto_apply=discount.auto_apply,
        priority=discount.priority,
        stackable=discount.stackable,
        variant_ids=frozenset(v.id for v in discount.applicable_variants.all()),
        category_ids=frozenset(c.id for c in discount.applicable_categories.all()),
        dealer_ids=frozenset(d.id for d in discount.applicable_dealers.all()),
    )


def _read_catalog(now, use_cache):
    from discounts.models import Discount

    switched_on = Discount.live_objects.filter(is_active=True)

    discount_ids = get_cached_active_discount_ids() if use_cache else None
    if discount_ids is None:
        discount_ids = [
            str(pk) for pk in switched_on.filter(end_date__gte=now).values_list('id', flat=True)
        ]
        if use_cache:
            cache_active_discount_ids(discount_ids)

    if not discount_ids:
        return []

    queryset = switched_on.filter(
        id__in=discount_ids,
        start_date__lte=now,
        end_date__gte=now,
    ).prefetch_related(
        'applicable_variants', 'applicable_categories', 'applicable_dealers'
    )
    return list(queryset)


def load_active_discounts(now=None, use_cache=True) -> List[DiscountSnapshot]:
    """
    Snapshot every discount that is live, switched on and inside its date
    window at `now`.

    On PostgreSQL the read runs under a statement timeout of
    DISCOUNT_CATALOG_TIMEOUT_MS. Any database failure is raised as
    CatalogUnavailable so checkout can carry on without discounts.
    """
    now = now or timezone.now()
    is_postgres = connection.vendor == 'postgresql'

    try:
        with transaction.atomic():
            if is_postgres:
                with connection.cursor() as cursor:
                    cursor.execute(f"SET LOCAL statement_timeout = {int(CATALOG_TIMEOUT_MS)}")
            discounts = _read_catalog(now, use_cache)
            if is_postgres:
                with connection.cursor() as cursor:
                    cursor.execute("SET LOCAL statement_timeout = DEFAULT")
    except DatabaseError as e:
        logger.error(f"Discount catalog read failed: {str(e)}")
        raise CatalogUnavailable(str(e)) from e

    logger.debug(f"Loaded {len(discounts)} active discounts")
    return [to_snapshot(discount) for discount in discounts]


def get_dealer_usage_counts(dealer_id, discount_ids=None) -> Dict[uuid.UUID, int]:
    """Number of orders on which the dealer has redeemed each discount."""
    from discounts.models import AppliedDiscount

    if dealer_id is None:
        return {}

    queryset = AppliedDiscount.objects.filter(dealer_id=dealer_id, is_active=True)
    if discount_ids is not None:
        queryset = queryset.filter(discount_id__in=list(discount_ids))

    rows = queryset.order_by().values('discount_id').annotate(used=Count('id'))
    return {row['discount_id']: row['used'] for row in rows}


def try_increment_usage(discount_id) -> bool:
    """
    Count one redemption of a discount.

    A single conditional UPDATE, so two orders racing for the last
    redemption cannot both succeed. Returns False when the limit is already
    reached.
    """
    from discounts.models import Discount

    updated = Discount.objects.filter(
        id=discount_id
    ).filter(
        Q(usage_limit__isnull=True) | Q(usage_count__lt=F('usage_limit'))
    ).update(
        usage_count=F('usage_count') + 1,
        updated_at=timezone.now()
    )

    if not updated:
        logger.warning(f"Usage limit reached for discount {discount_id}")
    return updated == 1


def find_discount_by_code(code):
    """Live discount for a promo code, or None."""
    from discounts.models import Discount

    if not code or not code.strip():
        return None
    return Discount.live_objects.filter(discount_code=code.strip().upper()).first()
