"""
Applicability resolver and discount calculator.

Everything here is a pure function over DiscountSnapshot-like records
(anything with the Discount field names and the variant_ids, category_ids,
dealer_ids id sets): no database access and no clock reads.
"""
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from django.core.exceptions import ValidationError

from core import EntityStatus
from discounts import DiscountType, ValidityStatus

MONEY_PLACES = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')


def quantize_money(amount) -> Decimal:
    """Round half up to two places."""
    return Decimal(amount).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def validate_line_item(quantity, unit_price):
    """
    Reject a line before any arithmetic is done on it.
    Quantity must be a positive integer and unit price a positive amount.
    """
    errors = {}

    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        errors['quantity'] = 'Quantity must be a positive whole number.'

    try:
        price = Decimal(str(unit_price))
    except (InvalidOperation, ValueError, TypeError):
        price = None
    if price is None or not price.is_finite() or price <= 0:
        errors['unit_price'] = 'Unit price must be greater than zero.'

    if errors:
        raise ValidationError(errors)


def _id_set(values):
    return {str(value) for value in values or ()}


def is_within_window(discount, now):
    return discount.start_date <= now <= discount.end_date


def has_usage_left(discount):
    return discount.usage_limit is None or discount.usage_count < discount.usage_limit


def get_validity_status(discount, now):
    if now > discount.end_date:
        return ValidityStatus.EXPIRED
    if now < discount.start_date:
        return ValidityStatus.NOT_YET_STARTED
    if not discount.is_active:
        return ValidityStatus.INACTIVE
    if not has_usage_left(discount):
        return ValidityStatus.USAGE_EXHAUSTED
    return ValidityStatus.ACTIVE


def matches_scope(discount, variant_id, category_ids):
    """General discounts match every variant; otherwise the variant or one of its categories must be listed."""
    variant_ids = _id_set(discount.variant_ids)
    scoped_categories = _id_set(discount.category_ids)

    if not variant_ids and not scoped_categories:
        return True
    if str(variant_id) in variant_ids:
        return True
    return bool(scoped_categories & _id_set(category_ids))


def matches_dealer(discount, dealer_id):
    dealer_ids = _id_set(discount.dealer_ids)
    return not dealer_ids or str(dealer_id) in dealer_ids


def within_dealer_limit(discount, dealer_usage):
    if discount.usage_limit_per_customer is None or dealer_usage is None:
        return True
    used = dealer_usage.get(str(discount.id), dealer_usage.get(discount.id, 0))
    return used < discount.usage_limit_per_customer


def resolve_applicable_discounts(discounts, dealer_id, variant_id, category_ids, now,
                                 include_ids=None, exclude_ids=None, dealer_usage=None):
    """
    Filter the catalog down to the discounts that may apply to one variant
    bought by one dealer at `now`.

    A discount survives when it is not deleted, switched on, inside its
    date window, has usage left, matches the variant by scope and the dealer
    by restriction, passes the optional include/exclude lists, and (when
    dealer_usage is given) the dealer has not used up its own allowance.

    Result is ordered by priority, highest first, then by id.
    """
    include = _id_set(include_ids) if include_ids is not None else None
    exclude = _id_set(exclude_ids)

    applicable = []
    for discount in discounts:
        if discount.status != EntityStatus.ACTIVE:
            continue
        if not discount.is_active:
            continue
        if not is_within_window(discount, now):
            continue
        if not has_usage_left(discount):
            continue
        if not matches_scope(discount, variant_id, category_ids):
            continue
        if not matches_dealer(discount, dealer_id):
            continue
        if include is not None and str(discount.id) not in include:
            continue
        if str(discount.id) in exclude:
            continue
        if not within_dealer_limit(discount, dealer_usage):
            continue
        applicable.append(discount)

    return sorted(applicable, key=lambda d: (-d.priority, str(d.id)))


@dataclass(frozen=True)
class ApplicabilityResult:
    discount_id: object
    discount_name: str
    discount_type: str
    discount_value: Decimal
    priority: int
    stackable: bool
    calculated_discount_amount: Decimal
    discounted_unit_price: Decimal
    minimum_order_met: bool
    maximum_discount_applied: bool
    is_applicable: bool

    def to_dict(self):
        data = asdict(self)
        data['discount_id'] = str(self.discount_id)
        for key in ('discount_value', 'calculated_discount_amount', 'discounted_unit_price'):
            data[key] = str(data[key])
        return data


def calculate_discount(discount, unit_price, quantity, order_subtotal=None) -> ApplicabilityResult:
    """
    Work out what one discount is worth on one line.

    The minimum order amount is checked against `order_subtotal`, or the
    line total when no subtotal is given. Intermediate values keep full
    precision; only the returned amounts are rounded.
    """
    validate_line_item(quantity, unit_price)

    unit_price = Decimal(str(unit_price))
    line_total = unit_price * quantity
    subtotal = line_total if order_subtotal is None else Decimal(str(order_subtotal))

    minimum_order_met = (
        discount.minimum_order_amount is None
        or subtotal >= Decimal(discount.minimum_order_amount)
    )

    result = dict(
        discount_id=discount.id,
        discount_name=discount.name,
        discount_type=discount.discount_type,
        discount_value=Decimal(discount.discount_value),
        priority=discount.priority,
        stackable=discount.stackable,
        minimum_order_met=minimum_order_met,
    )

    if not minimum_order_met:
        return ApplicabilityResult(
            calculated_discount_amount=quantize_money(ZERO),
            discounted_unit_price=quantize_money(unit_price),
            maximum_discount_applied=False,
            is_applicable=False,
            **result
        )

    value = Decimal(discount.discount_value)
    if discount.discount_type == DiscountType.PERCENTAGE:
        raw = line_total * value / HUNDRED
    elif discount.discount_type == DiscountType.FIXED_AMOUNT:
        raw = min(value, line_total)
    else:
        raw = ZERO

    maximum_discount_applied = False
    amount = raw
    if discount.maximum_discount_amount is not None and raw > Decimal(discount.maximum_discount_amount):
        amount = Decimal(discount.maximum_discount_amount)
        maximum_discount_applied = True

    discounted_unit_price = max((line_total - amount) / quantity, ZERO)

    return ApplicabilityResult(
        calculated_discount_amount=quantize_money(amount),
        discounted_unit_price=quantize_money(discounted_unit_price),
        maximum_discount_applied=maximum_discount_applied,
        is_applicable=minimum_order_met,
        **result
    )
