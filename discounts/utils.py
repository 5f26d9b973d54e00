import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from discounts import DiscountEventType
from discounts.catalog import load_active_discounts, get_dealer_usage_counts, try_increment_usage
from discounts.events import record_discount_event
from discounts.exceptions import CatalogUnavailable, UsageExhaustedAtCommit
from discounts.helpers import (
    ApplicabilityResult,
    ZERO,
    HUNDRED,
    calculate_discount,
    quantize_money,
    resolve_applicable_discounts,
    validate_line_item,
)

logger = logging.getLogger(__name__)

PERCENTAGE_PLACES = Decimal('0.0001')


@dataclass(frozen=True)
class StackResolution:
    best: Optional[ApplicabilityResult]
    applied: List[ApplicabilityResult]
    total_discount_amount: Decimal
    stackable_total: Decimal
    exclusive_total: Decimal


def _ranking(result):
    return -result.calculated_discount_amount, -result.priority, str(result.discount_id)


def resolve_best_discount(results) -> StackResolution:
    """
    Decide which discounts a line actually gets.

    Stackable discounts always combine with each other. Exclusive ones
    compete, and the best of them (largest amount, then priority, then id)
    is weighed against the whole stack. The larger total wins and a tie
    goes to the exclusive discount. Results that are not applicable or
    worth nothing take no part.
    """
    candidates = [r for r in results if r.is_applicable and r.calculated_discount_amount > 0]
    stackable = sorted((r for r in candidates if r.stackable), key=_ranking)
    exclusive = sorted((r for r in candidates if not r.stackable), key=_ranking)

    best_exclusive = exclusive[0] if exclusive else None
    exclusive_total = best_exclusive.calculated_discount_amount if best_exclusive else ZERO
    stackable_total = sum((r.calculated_discount_amount for r in stackable), ZERO)

    if exclusive_total <= 0 and stackable_total <= 0:
        return StackResolution(None, [], ZERO, stackable_total, exclusive_total)

    if exclusive_total >= stackable_total:
        return StackResolution(best_exclusive, [best_exclusive], exclusive_total, stackable_total, exclusive_total)

    return StackResolution(stackable[0], stackable, stackable_total, stackable_total, exclusive_total)


@dataclass(frozen=True)
class LineItem:
    """A priced cart line as the engine sees it."""
    variant_id: object
    quantity: int
    unit_price: Decimal
    category_ids: frozenset = frozenset()
    product_id: object = None
    name: str = ''


@dataclass
class LineItemPricing:
    line_item: LineItem
    original_total: Decimal
    results: List[ApplicabilityResult]
    best: Optional[ApplicabilityResult]
    applied: List[ApplicabilityResult]
    total_discount_amount: Decimal
    final_total: Decimal
    discount_percentage: Decimal
    clamped: bool = False

    @property
    def applicable(self):
        return [r for r in self.results if r.is_applicable]

    @property
    def applied_amounts(self) -> Dict[str, Decimal]:
        """
        Amount each applied discount contributes to this line. When the
        line total clamped the stack, the shortfall comes off the smallest
        contributors first.
        """
        amounts = {}
        remaining = self.total_discount_amount
        for result in self.applied:
            share = min(result.calculated_discount_amount, remaining)
            if share > 0:
                amounts[str(result.discount_id)] = share
            remaining -= share
        return amounts

    def to_dict(self):
        return {
            'variant_id': str(self.line_item.variant_id),
            'name': self.line_item.name,
            'quantity': self.line_item.quantity,
            'unit_price': str(quantize_money(self.line_item.unit_price)),
            'original_total': str(self.original_total),
            'discount_amount': str(self.total_discount_amount),
            'final_total': str(self.final_total),
            'discount_percentage': str(self.discount_percentage),
            'best_discount': self.best.to_dict() if self.best else None,
            'applied_discounts': [r.to_dict() for r in self.applied],
            'applicable_discounts': [r.to_dict() for r in self.applicable],
        }


def select_candidates(catalog, explicit_discount_id=None):
    """
    Discounts a pricing call may consider: the one behind a promo code when
    given, otherwise every auto-applied discount. Returns the candidates and
    the include-list to hand to the resolver.
    """
    if explicit_discount_id is None:
        return [d for d in catalog if d.auto_apply], None
    candidates = [d for d in catalog if str(d.id) == str(explicit_discount_id)]
    return candidates, {explicit_discount_id}


def calculate_for_line_item(discounts, dealer_id, line_item, now=None, include_ids=None,
                            exclude_ids=None, dealer_usage=None, order_subtotal=None) -> LineItemPricing:
    """
    Resolve, calculate and stack the discounts for a single line.
    Used for "show me the discounted price" calls and by price_order.
    """
    now = now or timezone.now()
    validate_line_item(line_item.quantity, line_item.unit_price)

    original_total = quantize_money(Decimal(str(line_item.unit_price)) * line_item.quantity)

    applicable = resolve_applicable_discounts(
        discounts,
        dealer_id=dealer_id,
        variant_id=line_item.variant_id,
        category_ids=line_item.category_ids,
        now=now,
        include_ids=include_ids,
        exclude_ids=exclude_ids,
        dealer_usage=dealer_usage,
    )
    results = [
        calculate_discount(discount, line_item.unit_price, line_item.quantity, order_subtotal)
        for discount in applicable
    ]
    resolution = resolve_best_discount(results)

    total_discount = resolution.total_discount_amount
    clamped = False
    if total_discount > original_total:
        total_discount = original_total
        clamped = True

    if original_total > 0:
        percentage = (total_discount / original_total * HUNDRED).quantize(
            PERCENTAGE_PLACES, rounding=ROUND_HALF_UP
        )
    else:
        percentage = ZERO.quantize(PERCENTAGE_PLACES)

    return LineItemPricing(
        line_item=line_item,
        original_total=original_total,
        results=results,
        best=resolution.best,
        applied=resolution.applied,
        total_discount_amount=quantize_money(total_discount),
        final_total=quantize_money(original_total - total_discount),
        discount_percentage=percentage,
        clamped=clamped,
    )


@dataclass
class OrderPricingResult:
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    items: List[LineItemPricing] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    applied_discount_totals: Dict[str, Decimal] = field(default_factory=dict)
    applied_discount_names: Dict[str, str] = field(default_factory=dict)

    def breakdown(self):
        """Human-readable pricing lines, in the order a dealer reads an invoice."""
        lines = []
        for item in self.items:
            label = item.line_item.name or str(item.line_item.variant_id)
            line = (
                f"{label}: {item.line_item.quantity} x {quantize_money(item.line_item.unit_price)}"
                f" = {item.original_total}"
            )
            if item.total_discount_amount > 0:
                names = ', '.join(r.discount_name for r in item.applied)
                line += f" - {item.total_discount_amount} ({names}) = {item.final_total}"
            lines.append(line)

        lines.append(f"Subtotal: {self.subtotal}")
        for discount_id, amount in self.applied_discount_totals.items():
            lines.append(f"Discount {self.applied_discount_names.get(discount_id, discount_id)}: -{amount}")
        lines.append(f"Total discount: {self.discount_amount}")
        lines.append(f"Total: {self.total_amount}")
        lines.extend(f"Warning: {warning}" for warning in self.warnings)
        return lines

    def to_dict(self):
        return {
            'subtotal': str(self.subtotal),
            'discount_amount': str(self.discount_amount),
            'total_amount': str(self.total_amount),
            'items': [item.to_dict() for item in self.items],
            'applied_discounts': [
                {
                    'discount_id': discount_id,
                    'discount_name': self.applied_discount_names.get(discount_id, ''),
                    'discount_amount': str(amount),
                }
                for discount_id, amount in self.applied_discount_totals.items()
            ],
            'warnings': list(self.warnings),
            'breakdown': self.breakdown(),
        }


def price_order(line_items, dealer_id, now=None, explicit_discount_id=None, catalog=None,
                excluded_discount_ids=None, dealer_usage=None) -> OrderPricingResult:
    """
    Price every line of an order and total it up.

    Each line is resolved, calculated and stacked on its own; the order
    subtotal is what minimum order amounts are measured against. Without a
    promo code only auto-applied discounts are considered, with one only
    that discount is.

    `catalog` is a list of DiscountSnapshot; when omitted it is loaded, and
    a catalog failure prices the order without discounts.
    """
    now = now or timezone.now()
    warnings = []

    for line_item in line_items:
        validate_line_item(line_item.quantity, line_item.unit_price)

    subtotal = quantize_money(sum(
        (Decimal(str(item.unit_price)) * item.quantity for item in line_items), ZERO
    ))

    if catalog is None:
        try:
            catalog = load_active_discounts(now)
        except CatalogUnavailable as e:
            logger.warning(f"Pricing without discounts, catalog unavailable: {str(e)}")
            warnings.append('Discounts are temporarily unavailable; the order was priced without discounts.')
            catalog = []

    candidates, include_ids = select_candidates(catalog, explicit_discount_id)

    items = []
    totals = {}
    names = {}
    for line_item in line_items:
        pricing = calculate_for_line_item(
            candidates,
            dealer_id=dealer_id,
            line_item=line_item,
            now=now,
            include_ids=include_ids,
            exclude_ids=excluded_discount_ids,
            dealer_usage=dealer_usage,
            order_subtotal=subtotal,
        )
        if pricing.clamped:
            warnings.append(
                f"Discount on {line_item.name or line_item.variant_id} was limited to the line total."
            )
        for discount_id, amount in pricing.applied_amounts.items():
            totals[discount_id] = totals.get(discount_id, ZERO) + amount
        for result in pricing.applied:
            names[str(result.discount_id)] = result.discount_name
        items.append(pricing)

    if explicit_discount_id is not None and not totals:
        warnings.append('The discount code does not apply to this order.')

    discount_amount = quantize_money(sum((item.total_discount_amount for item in items), ZERO))
    total_amount = subtotal - discount_amount
    if total_amount < 0:
        warnings.append('Discounts exceeded the order subtotal; the total was set to zero.')
        total_amount = ZERO

    return OrderPricingResult(
        subtotal=subtotal,
        discount_amount=discount_amount,
        total_amount=quantize_money(total_amount),
        items=items,
        warnings=warnings,
        applied_discount_totals=totals,
        applied_discount_names={k: v for k, v in names.items() if k in totals},
    )


def commit_discount_usage(order, pricing, user=None):
    """
    Redeem every discount the order received, once per order.

    Runs in a savepoint: if a total or per-dealer usage limit has been
    reached since the order was priced, nothing is counted and
    UsageExhaustedAtCommit names the discounts to drop.
    """
    from discounts.models import AppliedDiscount, Discount

    with transaction.atomic():
        exhausted = [
            discount_id for discount_id in pricing.applied_discount_totals
            if not try_increment_usage(discount_id)
        ]

        discounts = {
            str(pk): discount
            for pk, discount in Discount.objects.in_bulk(list(pricing.applied_discount_totals)).items()
        }

        # The increment above holds the discount row lock, so this count
        # sees every redemption committed by a concurrent checkout.
        if order.dealer_id is not None:
            dealer_usage = {
                str(discount_id): used
                for discount_id, used in get_dealer_usage_counts(order.dealer_id, discounts).items()
            }
            for discount_id, discount in discounts.items():
                limit = discount.usage_limit_per_customer
                if limit is not None and dealer_usage.get(discount_id, 0) >= limit and discount_id not in exhausted:
                    logger.warning(f"Per-dealer usage limit reached for discount {discount_id}")
                    exhausted.append(discount_id)

        if exhausted:
            raise UsageExhaustedAtCommit(exhausted)

        applied = []
        for discount_id, amount in pricing.applied_discount_totals.items():
            discount = discounts[discount_id]
            applied.append(AppliedDiscount.objects.create(
                order=order,
                discount=discount,
                dealer=order.dealer,
                user=user,
                discount_amount=amount,
                order_total=pricing.total_amount,
                metadata={
                    'discount_name': discount.name,
                    'discount_type': discount.discount_type,
                    'discount_value': str(discount.discount_value),
                    'stackable': discount.stackable,
                },
            ))
            record_discount_event(
                DiscountEventType.APPLIED,
                discount,
                order_id=str(order.id),
                order_number=order.order_number,
                dealer_id=str(order.dealer_id) if order.dealer_id else None,
                discount_amount=str(amount),
            )

    logger.info(f"Recorded {len(applied)} discount redemptions for order {order.order_number}")
    return applied
