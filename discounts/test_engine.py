"""
Unit tests for the pricing engine: resolver, calculator, stacker and order
aggregation. Everything runs on DiscountSnapshot records, no database needed.
"""
import uuid
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase
from django.utils import timezone

from core import EntityStatus
from discounts import DiscountScope, DiscountType, ValidityStatus
from discounts.catalog import DiscountSnapshot
from discounts.exceptions import CatalogUnavailable
from discounts.helpers import (
    calculate_discount,
    get_validity_status,
    quantize_money,
    resolve_applicable_discounts,
    validate_line_item,
)
from discounts.utils import (
    LineItem,
    calculate_for_line_item,
    price_order,
    resolve_best_discount,
    select_candidates,
)

NOW = timezone.now()


def snapshot(**overrides):
    values = dict(
        id=uuid.uuid4(),
        name='Discount',
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal('10.00'),
        start_date=NOW - timedelta(days=1),
        end_date=NOW + timedelta(days=30),
    )
    values.update(overrides)
    return DiscountSnapshot(**values)


def line(unit_price='100.00', quantity=1, variant_id=None, category_ids=(), name=''):
    return LineItem(
        variant_id=variant_id or uuid.uuid4(),
        quantity=quantity,
        unit_price=Decimal(unit_price),
        category_ids=frozenset(category_ids),
        name=name,
    )


class CalculatorTest(SimpleTestCase):
    """Test cases for calculate_discount."""

    # ==================== Percentage Tests ====================

    def test_percentage_discount(self):
        """15% of 5 x 100 is 75, leaving 85 per unit."""
        result = calculate_discount(
            snapshot(discount_value=Decimal('15')), Decimal('100'), 5
        )

        self.assertTrue(result.is_applicable)
        self.assertEqual(result.calculated_discount_amount, Decimal('75.00'))
        self.assertEqual(result.discounted_unit_price, Decimal('85.00'))
        self.assertFalse(result.maximum_discount_applied)

    def test_percentage_discount_rounds_half_up(self):
        """Amounts are rounded half up to cents only at the end."""
        result = calculate_discount(
            snapshot(discount_value=Decimal('12.5')), Decimal('0.99'), 3
        )

        # 2.97 * 0.125 = 0.37125
        self.assertEqual(result.calculated_discount_amount, Decimal('0.37'))
        # (2.97 - 0.37125) / 3 = 0.86625
        self.assertEqual(result.discounted_unit_price, Decimal('0.87'))

    def test_hundred_percent_discount(self):
        """A 100% discount makes the line free, never negative."""
        result = calculate_discount(
            snapshot(discount_value=Decimal('100')), Decimal('40'), 2
        )

        self.assertEqual(result.calculated_discount_amount, Decimal('80.00'))
        self.assertEqual(result.discounted_unit_price, Decimal('0.00'))

    # ==================== Fixed Amount Tests ====================

    def test_fixed_amount_capped_at_line_value(self):
        """A fixed 50 off a 20 line only takes 20."""
        result = calculate_discount(
            snapshot(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('50')),
            Decimal('20'), 1
        )

        self.assertEqual(result.calculated_discount_amount, Decimal('20.00'))
        self.assertEqual(result.discounted_unit_price, Decimal('0.00'))

    def test_fixed_amount_applies_once_per_line(self):
        """A fixed amount comes off the line, not each unit."""
        result = calculate_discount(
            snapshot(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('30')),
            Decimal('50'), 4
        )

        self.assertEqual(result.calculated_discount_amount, Decimal('30.00'))
        self.assertEqual(result.discounted_unit_price, Decimal('42.50'))

    # ==================== Minimum / Maximum Tests ====================

    def test_minimum_order_not_met(self):
        """Below the minimum order amount nothing applies."""
        result = calculate_discount(
            snapshot(discount_value=Decimal('50'), minimum_order_amount=Decimal('100')),
            Decimal('80'), 1, order_subtotal=Decimal('80')
        )

        self.assertFalse(result.minimum_order_met)
        self.assertFalse(result.is_applicable)
        self.assertEqual(result.calculated_discount_amount, Decimal('0.00'))
        self.assertEqual(result.discounted_unit_price, Decimal('80.00'))

    def test_minimum_order_met_exactly(self):
        """Reaching the minimum exactly is enough."""
        result = calculate_discount(
            snapshot(minimum_order_amount=Decimal('100')),
            Decimal('100'), 1, order_subtotal=Decimal('100')
        )

        self.assertTrue(result.minimum_order_met)
        self.assertEqual(result.calculated_discount_amount, Decimal('10.00'))

    def test_minimum_order_uses_order_subtotal(self):
        """The minimum is measured on the whole order, not the line."""
        result = calculate_discount(
            snapshot(minimum_order_amount=Decimal('100')),
            Decimal('30'), 1, order_subtotal=Decimal('150')
        )

        self.assertTrue(result.is_applicable)
        self.assertEqual(result.calculated_discount_amount, Decimal('3.00'))

    def test_minimum_order_defaults_to_line_total(self):
        """Without an order subtotal the line total is used."""
        result = calculate_discount(
            snapshot(minimum_order_amount=Decimal('100')), Decimal('30'), 3
        )

        self.assertFalse(result.is_applicable)

    def test_maximum_discount_cap(self):
        """The maximum discount amount caps the result and is reported."""
        result = calculate_discount(
            snapshot(discount_value=Decimal('50'), maximum_discount_amount=Decimal('25')),
            Decimal('100'), 2
        )

        self.assertTrue(result.maximum_discount_applied)
        self.assertEqual(result.calculated_discount_amount, Decimal('25.00'))
        self.assertEqual(result.discounted_unit_price, Decimal('87.50'))

    def test_maximum_discount_not_reached(self):
        result = calculate_discount(
            snapshot(maximum_discount_amount=Decimal('25')), Decimal('100'), 1
        )

        self.assertFalse(result.maximum_discount_applied)
        self.assertEqual(result.calculated_discount_amount, Decimal('10.00'))

    # ==================== Property Tests ====================

    def test_same_inputs_give_same_result(self):
        discounts = [
            snapshot(discount_value=Decimal('12.5')),
            snapshot(discount_value=Decimal('7'), maximum_discount_amount=Decimal('30')),
            snapshot(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('45')),
            snapshot(minimum_order_amount=Decimal('1000')),
        ]
        for discount in discounts:
            for unit_price, quantity in [(Decimal('0.99'), 3), (Decimal('120.40'), 7)]:
                with self.subTest(discount=discount.discount_value, unit_price=unit_price, quantity=quantity):
                    first = calculate_discount(discount, unit_price, quantity)
                    second = calculate_discount(discount, unit_price, quantity)

                    self.assertEqual(first, second)

    def test_percentage_amount_grows_with_quantity(self):
        """More units never mean a smaller percentage discount, capped or not."""
        for value in [Decimal('1'), Decimal('12.5'), Decimal('33.33'), Decimal('100')]:
            for cap in [None, Decimal('40')]:
                discount = snapshot(discount_value=value, maximum_discount_amount=cap)
                previous = Decimal('0')
                for quantity in [1, 2, 3, 5, 8, 13, 50]:
                    with self.subTest(value=value, cap=cap, quantity=quantity):
                        amount = calculate_discount(discount, Decimal('19.99'), quantity).calculated_discount_amount

                        self.assertGreaterEqual(amount, previous)
                        previous = amount

    def test_capped_amount_never_exceeds_maximum(self):
        for discount_type, value in [
            (DiscountType.PERCENTAGE, Decimal('25')),
            (DiscountType.PERCENTAGE, Decimal('100')),
            (DiscountType.FIXED_AMOUNT, Decimal('75')),
        ]:
            for cap in [Decimal('0.50'), Decimal('10'), Decimal('60')]:
                discount = snapshot(discount_type=discount_type, discount_value=value, maximum_discount_amount=cap)
                for unit_price, quantity in [(Decimal('3.33'), 1), (Decimal('49.95'), 4), (Decimal('250'), 10)]:
                    with self.subTest(type=discount_type, value=value, cap=cap, quantity=quantity):
                        result = calculate_discount(discount, unit_price, quantity)

                        self.assertLessEqual(result.calculated_discount_amount, cap)
                        self.assertLessEqual(result.calculated_discount_amount, unit_price * quantity)
                        if result.maximum_discount_applied:
                            self.assertEqual(result.calculated_discount_amount, cap)

    # ==================== Input Validation Tests ====================

    def test_zero_quantity_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            calculate_discount(snapshot(), Decimal('10'), 0)
        self.assertIn('quantity', ctx.exception.message_dict)

    def test_fractional_quantity_rejected(self):
        with self.assertRaises(ValidationError):
            validate_line_item(1.5, Decimal('10'))

    def test_boolean_quantity_rejected(self):
        with self.assertRaises(ValidationError):
            validate_line_item(True, Decimal('10'))

    def test_non_positive_unit_price_rejected(self):
        """Zero, negative and non-numeric prices are all rejected."""
        for price in (Decimal('0'), Decimal('-5'), 'abc', None):
            with self.subTest(price=price):
                with self.assertRaises(ValidationError) as ctx:
                    validate_line_item(1, price)
                self.assertIn('unit_price', ctx.exception.message_dict)

    def test_to_dict_serializes_amounts(self):
        result = calculate_discount(snapshot(name='Spring'), Decimal('100'), 1)
        data = result.to_dict()

        self.assertEqual(data['discount_name'], 'Spring')
        self.assertEqual(data['calculated_discount_amount'], '10.00')
        self.assertEqual(data['discount_id'], str(result.discount_id))


class ResolverTest(SimpleTestCase):
    """Test cases for resolve_applicable_discounts."""

    def setUp(self):
        self.dealer_id = uuid.uuid4()
        self.variant_id = uuid.uuid4()
        self.category_id = uuid.uuid4()

    def resolve(self, discounts, **kwargs):
        params = dict(
            dealer_id=self.dealer_id,
            variant_id=self.variant_id,
            category_ids=[self.category_id],
            now=NOW,
        )
        params.update(kwargs)
        return resolve_applicable_discounts(discounts, **params)

    # ==================== Eligibility Tests ====================

    def test_general_discount_applies_to_any_variant(self):
        discount = snapshot()
        self.assertEqual(self.resolve([discount]), [discount])

    def test_usage_exhausted_is_excluded(self):
        """A discount used up at resolution time never shows up."""
        discount = snapshot(usage_limit=1, usage_count=1)
        self.assertEqual(self.resolve([discount]), [])

    def test_usage_left_is_included(self):
        discount = snapshot(usage_limit=2, usage_count=1)
        self.assertEqual(self.resolve([discount]), [discount])

    def test_expired_and_future_are_excluded(self):
        expired = snapshot(start_date=NOW - timedelta(days=10), end_date=NOW - timedelta(days=1))
        future = snapshot(start_date=NOW + timedelta(days=1), end_date=NOW + timedelta(days=10))
        self.assertEqual(self.resolve([expired, future]), [])

    def test_window_bounds_are_inclusive(self):
        starts_now = snapshot(start_date=NOW)
        ends_now = snapshot(end_date=NOW)
        self.assertEqual(len(self.resolve([starts_now, ends_now])), 2)

    def test_switched_off_is_excluded(self):
        self.assertEqual(self.resolve([snapshot(is_active=False)]), [])

    def test_deleted_is_excluded(self):
        self.assertEqual(self.resolve([snapshot(status=EntityStatus.DELETED)]), [])

    # ==================== Scope Tests ====================

    def test_variant_scope(self):
        """A variant-scoped discount only matches its own variants."""
        matching = snapshot(variant_ids=frozenset({self.variant_id}))
        other = snapshot(variant_ids=frozenset({uuid.uuid4()}))

        self.assertEqual(self.resolve([matching, other]), [matching])
        self.assertEqual(matching.scope, DiscountScope.VARIANT)

    def test_category_scope(self):
        matching = snapshot(category_ids=frozenset({self.category_id}))
        other = snapshot(category_ids=frozenset({uuid.uuid4()}))

        self.assertEqual(self.resolve([matching, other]), [matching])
        self.assertEqual(matching.scope, DiscountScope.CATEGORY)

    def test_ids_compared_as_strings(self):
        """String and UUID ids refer to the same record."""
        discount = snapshot(variant_ids=frozenset({str(self.variant_id)}))
        self.assertEqual(self.resolve([discount]), [discount])

    # ==================== Dealer Tests ====================

    def test_dealer_restriction(self):
        """Dealer restriction is independent of scope."""
        mine = snapshot(
            category_ids=frozenset({self.category_id}),
            dealer_ids=frozenset({self.dealer_id}),
        )
        theirs = snapshot(dealer_ids=frozenset({uuid.uuid4()}))

        self.assertEqual(self.resolve([mine, theirs]), [mine])

    def test_per_dealer_limit(self):
        discount = snapshot(usage_limit_per_customer=2)

        self.assertEqual(self.resolve([discount], dealer_usage={discount.id: 1}), [discount])
        self.assertEqual(self.resolve([discount], dealer_usage={str(discount.id): 2}), [])

    def test_per_dealer_limit_ignored_without_usage(self):
        discount = snapshot(usage_limit_per_customer=1)
        self.assertEqual(self.resolve([discount]), [discount])

    # ==================== Filter / Ordering Tests ====================

    def test_include_and_exclude_lists(self):
        first, second = snapshot(), snapshot()

        self.assertEqual(self.resolve([first, second], include_ids={first.id}), [first])
        self.assertEqual(self.resolve([first, second], exclude_ids={str(first.id)}), [second])

    def test_ordered_by_priority_then_id(self):
        low = snapshot(priority=1)
        high = snapshot(priority=50)
        tied = sorted([snapshot(priority=10), snapshot(priority=10)], key=lambda d: str(d.id))

        result = self.resolve([low, tied[1], high, tied[0]])

        self.assertEqual(result, [high, tied[0], tied[1], low])

    # ==================== Validity Status Tests ====================

    def test_validity_status_precedence(self):
        """Expired wins over inactive, inactive over exhausted."""
        self.assertEqual(
            get_validity_status(snapshot(end_date=NOW - timedelta(seconds=1), is_active=False), NOW),
            ValidityStatus.EXPIRED
        )
        self.assertEqual(
            get_validity_status(snapshot(start_date=NOW + timedelta(hours=1)), NOW),
            ValidityStatus.NOT_YET_STARTED
        )
        self.assertEqual(
            get_validity_status(snapshot(is_active=False, usage_limit=1, usage_count=1), NOW),
            ValidityStatus.INACTIVE
        )
        self.assertEqual(
            get_validity_status(snapshot(usage_limit=1, usage_count=1), NOW),
            ValidityStatus.USAGE_EXHAUSTED
        )
        self.assertEqual(get_validity_status(snapshot(), NOW), ValidityStatus.ACTIVE)


class StackerTest(SimpleTestCase):
    """Test cases for resolve_best_discount."""

    def result(self, amount, stackable, priority=0, line_total='1000'):
        discount = snapshot(
            discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=Decimal(amount),
            stackable=stackable,
            priority=priority,
        )
        return calculate_discount(discount, Decimal(line_total), 1)

    def test_exclusive_beats_smaller_stack(self):
        """Exclusive 30 against a stack of 10: the exclusive discount wins."""
        exclusive = self.result('30', stackable=False)
        stackable = self.result('10', stackable=True)

        resolution = resolve_best_discount([stackable, exclusive])

        self.assertEqual(resolution.best, exclusive)
        self.assertEqual(resolution.applied, [exclusive])
        self.assertEqual(resolution.total_discount_amount, Decimal('30.00'))
        self.assertEqual(resolution.stackable_total, Decimal('10.00'))

    def test_stackables_sum(self):
        """Two stackable discounts of 10 and 15 give 25."""
        first = self.result('10', stackable=True)
        second = self.result('15', stackable=True)

        resolution = resolve_best_discount([first, second])

        self.assertEqual(resolution.total_discount_amount, Decimal('25.00'))
        self.assertEqual(resolution.best, second)
        self.assertEqual(resolution.applied, [second, first])

    def test_stack_beats_smaller_exclusive(self):
        exclusive = self.result('20', stackable=False)
        first = self.result('15', stackable=True)
        second = self.result('10', stackable=True)

        resolution = resolve_best_discount([exclusive, first, second])

        self.assertEqual(resolution.total_discount_amount, Decimal('25.00'))
        self.assertNotIn(exclusive, resolution.applied)
        self.assertEqual(resolution.exclusive_total, Decimal('20.00'))

    def test_tie_goes_to_exclusive(self):
        exclusive = self.result('25', stackable=False)
        stackable = self.result('25', stackable=True)

        resolution = resolve_best_discount([stackable, exclusive])

        self.assertEqual(resolution.applied, [exclusive])

    def test_best_exclusive_by_amount_then_priority(self):
        small = self.result('10', stackable=False, priority=90)
        big = self.result('20', stackable=False)
        big_priority = self.result('20', stackable=False, priority=5)

        resolution = resolve_best_discount([small, big, big_priority])

        self.assertEqual(resolution.best, big_priority)

    def test_nothing_applicable(self):
        """Inapplicable or zero results leave the line undiscounted."""
        discount = snapshot(minimum_order_amount=Decimal('5000'))
        inapplicable = calculate_discount(discount, Decimal('100'), 1)

        resolution = resolve_best_discount([inapplicable])

        self.assertIsNone(resolution.best)
        self.assertEqual(resolution.applied, [])
        self.assertEqual(resolution.total_discount_amount, Decimal('0'))

    def test_empty(self):
        self.assertIsNone(resolve_best_discount([]).best)


class LineItemPricingTest(SimpleTestCase):
    """Test cases for calculate_for_line_item."""

    def setUp(self):
        self.dealer_id = uuid.uuid4()

    def test_line_pricing(self):
        pricing = calculate_for_line_item(
            [snapshot(discount_value=Decimal('15'))], self.dealer_id, line('100.00', 5), now=NOW
        )

        self.assertEqual(pricing.original_total, Decimal('500.00'))
        self.assertEqual(pricing.total_discount_amount, Decimal('75.00'))
        self.assertEqual(pricing.final_total, Decimal('425.00'))
        self.assertEqual(pricing.discount_percentage, Decimal('15.0000'))
        self.assertFalse(pricing.clamped)

    def test_stack_clamped_to_line_total(self):
        """Stacked discounts never take a line below zero."""
        discounts = [
            snapshot(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('15'), stackable=True),
            snapshot(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('10'), stackable=True),
        ]

        pricing = calculate_for_line_item(discounts, self.dealer_id, line('20.00'), now=NOW)

        self.assertTrue(pricing.clamped)
        self.assertEqual(pricing.total_discount_amount, Decimal('20.00'))
        self.assertEqual(pricing.final_total, Decimal('0.00'))
        self.assertEqual(pricing.discount_percentage, Decimal('100.0000'))
        self.assertEqual(sorted(pricing.applied_amounts.values()), [Decimal('5.00'), Decimal('15.00')])

    def test_no_discounts(self):
        pricing = calculate_for_line_item([], self.dealer_id, line('12.34', 2), now=NOW)

        self.assertIsNone(pricing.best)
        self.assertEqual(pricing.final_total, Decimal('24.68'))
        self.assertEqual(pricing.discount_percentage, Decimal('0.0000'))

    def test_applicable_lists_every_qualifying_result(self):
        discounts = [snapshot(discount_value=Decimal('5')), snapshot(discount_value=Decimal('20'))]

        pricing = calculate_for_line_item(discounts, self.dealer_id, line(), now=NOW)

        self.assertEqual(len(pricing.applicable), 2)
        self.assertEqual(pricing.total_discount_amount, Decimal('20.00'))
        self.assertEqual(pricing.to_dict()['best_discount']['discount_value'], '20')

    def test_invalid_line_rejected(self):
        with self.assertRaises(ValidationError):
            calculate_for_line_item([snapshot()], self.dealer_id, line('0'), now=NOW)


class PriceOrderTest(SimpleTestCase):
    """Test cases for price_order."""

    def setUp(self):
        self.dealer_id = uuid.uuid4()
        self.category_id = uuid.uuid4()

    def test_lines_priced_independently(self):
        """A category discount only touches lines in that category."""
        discount = snapshot(name='Tyres 20%', discount_value=Decimal('20'),
                            category_ids=frozenset({self.category_id}))
        tyres = line('100.00', 2, category_ids=[self.category_id], name='Tyre')
        oil = line('50.00', 1, name='Oil')

        pricing = price_order([tyres, oil], self.dealer_id, now=NOW, catalog=[discount])

        self.assertEqual(pricing.subtotal, Decimal('250.00'))
        self.assertEqual(pricing.discount_amount, Decimal('40.00'))
        self.assertEqual(pricing.total_amount, Decimal('210.00'))
        self.assertEqual(pricing.items[1].total_discount_amount, Decimal('0.00'))
        self.assertEqual(pricing.applied_discount_totals, {str(discount.id): Decimal('40.00')})
        self.assertEqual(pricing.applied_discount_names, {str(discount.id): 'Tyres 20%'})
        self.assertEqual(pricing.warnings, [])

    def test_minimum_measured_on_order_subtotal(self):
        discount = snapshot(minimum_order_amount=Decimal('100'))

        pricing = price_order(
            [line('60.00'), line('60.00')], self.dealer_id, now=NOW, catalog=[discount]
        )

        self.assertEqual(pricing.discount_amount, Decimal('12.00'))

    def test_code_only_discount_needs_code(self):
        """Discounts that are not auto-applied stay out of automatic pricing."""
        discount = snapshot(auto_apply=False, discount_code='VIP10')

        pricing = price_order([line()], self.dealer_id, now=NOW, catalog=[discount])

        self.assertEqual(pricing.discount_amount, Decimal('0.00'))

    def test_explicit_discount_considered_alone(self):
        """A promo code bypasses automatic selection, even of better discounts."""
        coded = snapshot(auto_apply=False, discount_code='VIP10')
        better = snapshot(discount_value=Decimal('50'))

        pricing = price_order(
            [line()], self.dealer_id, now=NOW, catalog=[coded, better],
            explicit_discount_id=coded.id
        )

        self.assertEqual(pricing.discount_amount, Decimal('10.00'))
        self.assertEqual(list(pricing.applied_discount_totals), [str(coded.id)])

    def test_explicit_discount_not_applicable_warns(self):
        coded = snapshot(discount_code='VIP10', minimum_order_amount=Decimal('1000'))

        pricing = price_order(
            [line()], self.dealer_id, now=NOW, catalog=[coded], explicit_discount_id=coded.id
        )

        self.assertEqual(pricing.discount_amount, Decimal('0.00'))
        self.assertIn('The discount code does not apply to this order.', pricing.warnings)

    def test_excluded_discounts_skipped(self):
        discount = snapshot()

        pricing = price_order(
            [line()], self.dealer_id, now=NOW, catalog=[discount],
            excluded_discount_ids={str(discount.id)}
        )

        self.assertEqual(pricing.discount_amount, Decimal('0.00'))

    def test_clamped_line_warns(self):
        discounts = [
            snapshot(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('8'), stackable=True),
            snapshot(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('8'), stackable=True),
        ]

        pricing = price_order([line('10.00', name='Filter')], self.dealer_id, now=NOW, catalog=discounts)

        self.assertEqual(pricing.total_amount, Decimal('0.00'))
        self.assertEqual(len(pricing.warnings), 1)
        self.assertIn('Filter', pricing.warnings[0])
        self.assertEqual(sum(pricing.applied_discount_totals.values()), Decimal('10.00'))

    def test_catalog_unavailable_prices_without_discounts(self):
        with mock.patch('discounts.utils.load_active_discounts', side_effect=CatalogUnavailable('timeout')):
            pricing = price_order([line()], self.dealer_id, now=NOW)

        self.assertEqual(pricing.total_amount, Decimal('100.00'))
        self.assertEqual(len(pricing.warnings), 1)

    def test_breakdown_and_to_dict(self):
        discount = snapshot(name='Spring')

        pricing = price_order([line('100.00', 2, name='Brake pad')], self.dealer_id, now=NOW, catalog=[discount])
        breakdown = pricing.breakdown()
        data = pricing.to_dict()

        self.assertEqual(breakdown[0], 'Brake pad: 2 x 100.00 = 200.00 - 20.00 (Spring) = 180.00')
        self.assertIn('Discount Spring: -20.00', breakdown)
        self.assertEqual(breakdown[-1], 'Total: 180.00')
        self.assertEqual(data['total_amount'], '180.00')
        self.assertEqual(data['applied_discounts'][0]['discount_name'], 'Spring')

    def test_select_candidates(self):
        auto = snapshot()
        coded = snapshot(auto_apply=False, discount_code='X')

        self.assertEqual(select_candidates([auto, coded]), ([auto], None))
        candidates, include = select_candidates([auto, coded], coded.id)
        self.assertEqual(candidates, [coded])
        self.assertEqual(include, {coded.id})

    def test_quantize_money(self):
        self.assertEqual(quantize_money(Decimal('2.675')), Decimal('2.68'))
        self.assertEqual(quantize_money(Decimal('-0.005')), Decimal('-0.01'))
