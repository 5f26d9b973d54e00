import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from core import Currency
from discounts.catalog import load_active_discounts, get_dealer_usage_counts, find_discount_by_code
from discounts.exceptions import CatalogUnavailable, UsageExhaustedAtCommit
from discounts.utils import LineItem, price_order, commit_discount_usage
from orders.models import Order, OrderItem
from products.models import ProductVariant

logger = logging.getLogger(__name__)

CATALOG_UNAVAILABLE_WARNING = 'Discounts are temporarily unavailable; the order was priced without discounts.'


def line_item_for_variant(variant, quantity, dealer=None, unit_price=None, now=None):
    """Price a variant for a dealer and wrap it for the pricing engine."""
    if unit_price is None:
        unit_price = variant.price_for(dealer, now)
    return LineItem(
        variant_id=variant.id,
        quantity=quantity,
        unit_price=unit_price,
        category_ids=frozenset(variant.category_ids),
        product_id=variant.product_id,
        name=str(variant),
    )


def build_line_items(items, dealer=None, now=None):
    """
    Turn checkout input ([{product_variant_id, quantity}]) into engine line
    items. Repeated variants are merged into one line.

    Returns (line_items, variants by id).
    """
    quantities = {}
    for item in items:
        variant_id = item['product_variant_id']
        quantities[variant_id] = quantities.get(variant_id, 0) + item['quantity']

    variants = ProductVariant.objects.select_related(
        'product__category'
    ).filter(product__is_active=True).in_bulk(list(quantities))

    missing = [str(variant_id) for variant_id in quantities if variant_id not in variants]
    if missing:
        raise ValidationError({'items': f"Unknown or inactive product variants: {', '.join(missing)}"})

    line_items = [
        line_item_for_variant(variants[variant_id], quantity, dealer=dealer, now=now)
        for variant_id, quantity in quantities.items()
    ]
    return line_items, variants


def resolve_discount_code(discount_code):
    """Id of the live discount behind a promo code; None when no code was entered."""
    if not discount_code:
        return None
    discount = find_discount_by_code(discount_code)
    if discount is None:
        raise ValidationError({'discount_code': 'Invalid discount code.'})
    return discount.id


def _load_catalog(now):
    try:
        return load_active_discounts(now), []
    except CatalogUnavailable as e:
        logger.warning(f"Pricing without discounts, catalog unavailable: {str(e)}")
        return [], [CATALOG_UNAVAILABLE_WARNING]


def price_cart(dealer, items, discount_code=None, now=None):
    """Price a cart without placing it (order preview)."""
    now = now or timezone.now()
    line_items, _ = build_line_items(items, dealer=dealer, now=now)
    explicit_discount_id = resolve_discount_code(discount_code)
    catalog, warnings = _load_catalog(now)

    pricing = price_order(
        line_items,
        dealer_id=dealer.id,
        now=now,
        explicit_discount_id=explicit_discount_id,
        catalog=catalog,
        dealer_usage=get_dealer_usage_counts(dealer.id),
    )
    pricing.warnings[:0] = warnings
    return pricing


def _persist_order(user, dealer, pricing, variants, currency, discount_code, warnings, notes):
    order = Order.objects.create(
        dealer=dealer,
        user=user,
        subtotal=pricing.subtotal,
        discount_amount=pricing.discount_amount,
        total_amount=pricing.total_amount,
        currency=currency,
        discount_code=(discount_code or '').strip().upper(),
        pricing_warnings=warnings,
        notes=notes,
    )
    for item in pricing.items:
        OrderItem.objects.create(
            order=order,
            product_variant=variants[item.line_item.variant_id],
            quantity=item.line_item.quantity,
            unit_rate=item.line_item.unit_price,
            discount_amount=item.total_discount_amount,
            amount=item.final_total,
        )
    return order


def place_order(user, dealer, items, discount_code=None, currency=Currency.TRY, notes='', now=None):
    """
    Price and persist an order, then redeem its discounts.

    If a discount runs out of uses between pricing and commit, the savepoint
    holding the order is rolled back, that discount is excluded, and the
    order is priced again. Every dropped discount leaves a warning on the
    order.

    Returns (order, pricing).
    """
    now = now or timezone.now()
    line_items, variants = build_line_items(items, dealer=dealer, now=now)
    explicit_discount_id = resolve_discount_code(discount_code)
    catalog, catalog_warnings = _load_catalog(now)
    dealer_usage = get_dealer_usage_counts(dealer.id)
    names = {str(discount.id): discount.name for discount in catalog}

    excluded = set()
    dropped_warnings = []

    with transaction.atomic():
        while True:
            pricing = price_order(
                line_items,
                dealer_id=dealer.id,
                now=now,
                explicit_discount_id=explicit_discount_id,
                catalog=catalog,
                excluded_discount_ids=excluded,
                dealer_usage=dealer_usage,
            )
            warnings = catalog_warnings + dropped_warnings + pricing.warnings

            try:
                with transaction.atomic():
                    order = _persist_order(
                        user, dealer, pricing, variants, currency, discount_code, warnings, notes
                    )
                    commit_discount_usage(order, pricing, user)
            except UsageExhaustedAtCommit as e:
                logger.warning(f"Re-pricing order for dealer {dealer.code}: {str(e)}")
                for discount_id in e.discount_ids:
                    excluded.add(str(discount_id))
                    dropped_warnings.append(
                        f"Discount {names.get(str(discount_id), discount_id)} reached its usage limit "
                        f"and was removed from this order."
                    )
                continue
            break

    pricing.warnings[:] = warnings
    logger.info(f"Order {order.order_number} placed for dealer {dealer.code}: total {order.total_amount}")
    return order, pricing
