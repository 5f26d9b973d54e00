import uuid
from decimal import Decimal
from unittest import mock

from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from discounts import DiscountType, DiscountEventType
from discounts.exceptions import CatalogUnavailable
from discounts.factories import AppliedDiscountFactory, DiscountFactory
from discounts.models import AppliedDiscount, DiscountEvent
from orders.factories import (
    UserFactory, DealerFactory, CategoryFactory, ProductFactory,
    ProductVariantFactory, OrderFactory, OrderItemFactory
)
from orders.models import Order, OrderItem
from orders.utils import place_order, build_line_items


class OrderAPITestMixin:
    """Shared catalog: two tyres in one category and an oil outside it."""

    def setUp(self):
        """Set up test data before each test."""
        self.client = APIClient()
        cache.clear()

        self.dealer = DealerFactory(code='DLR-MAIN')
        self.user = UserFactory(email='dealer@example.com', dealer=self.dealer)
        self.admin_user = UserFactory(email='admin@example.com', is_staff=True, dealer=None)

        self.tyres = CategoryFactory(name='Tyres')
        self.tyre = ProductVariantFactory(
            name='205/55 R16',
            product=ProductFactory(name='Summer tyre', category=self.tyres),
            price=Decimal('100.00')
        )
        self.winter_tyre = ProductVariantFactory(
            name='195/65 R15',
            product=ProductFactory(name='Winter tyre', category=self.tyres),
            price=Decimal('80.00')
        )
        self.oil = ProductVariantFactory(
            name='5L',
            product=ProductFactory(name='Engine oil', category=CategoryFactory(name='Oils')),
            price=Decimal('50.00')
        )

    def items(self, *pairs):
        return [
            {'product_variant_id': str(variant.id), 'quantity': quantity}
            for variant, quantity in pairs
        ]


class OrderPreviewAPITest(OrderAPITestMixin, APITestCase):
    """Test cases for the order preview endpoint."""

    def setUp(self):
        super().setUp()
        self.url = reverse('order-preview')

    def test_preview_without_discounts(self):
        """Test a preview with no live discounts."""
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {'items': self.items((self.tyre, 2))}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['subtotal'], '200.00')
        self.assertEqual(data['discount_amount'], '0.00')
        self.assertEqual(data['total_amount'], '200.00')
        self.assertEqual(data['warnings'], [])

    def test_preview_category_discount(self):
        """Test that a category discount only reduces lines in that category."""
        DiscountFactory(name='Tyre week', discount_value=Decimal('10.00'), applicable_categories=[self.tyres])
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'items': self.items((self.tyre, 2), (self.oil, 1))
        }, format='json')

        data = response.data['data']
        self.assertEqual(data['subtotal'], '250.00')
        self.assertEqual(data['discount_amount'], '20.00')
        self.assertEqual(data['total_amount'], '230.00')
        self.assertEqual(data['items'][1]['discount_amount'], '0.00')
        self.assertEqual(data['applied_discounts'][0]['discount_name'], 'Tyre week')
        self.assertIn('Total: 230.00', data['breakdown'])

    def test_preview_does_not_redeem(self):
        """Test that previewing never counts usage."""
        discount = DiscountFactory(usage_limit=1)
        self.client.force_authenticate(user=self.user)

        self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        discount.refresh_from_db()
        self.assertEqual(discount.usage_count, 0)
        self.assertFalse(Order.objects.exists())

    def test_preview_exclusive_beats_stack(self):
        """Test exclusive 30 against stackable 10 on the same line."""
        DiscountFactory(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('30.00'))
        DiscountFactory(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('10.00'), stackable=True)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        self.assertEqual(response.data['data']['discount_amount'], '30.00')

    def test_preview_minimum_order_on_subtotal(self):
        """Test that the minimum order amount is measured on the whole cart."""
        DiscountFactory(minimum_order_amount=Decimal('150.00'))
        self.client.force_authenticate(user=self.user)

        small = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')
        large = self.client.post(self.url, {'items': self.items((self.tyre, 1), (self.oil, 1))}, format='json')

        self.assertEqual(small.data['data']['discount_amount'], '0.00')
        self.assertEqual(large.data['data']['discount_amount'], '15.00')

    def test_preview_merges_repeated_variants(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {
            'items': self.items((self.tyre, 1), (self.tyre, 2))
        }, format='json')

        data = response.data['data']
        self.assertEqual(len(data['items']), 1)
        self.assertEqual(data['items'][0]['quantity'], 3)
        self.assertEqual(data['subtotal'], '300.00')

    def test_preview_with_discount_code(self):
        DiscountFactory(discount_code='VIP', auto_apply=False, discount_value=Decimal('25.00'))
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'items': self.items((self.tyre, 1)), 'discount_code': 'vip'
        }, format='json')

        self.assertEqual(response.data['data']['discount_amount'], '25.00')

    def test_preview_invalid_discount_code(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'items': self.items((self.tyre, 1)), 'discount_code': 'NOPE'
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('discount_code', response.data['error']['fields'])

    def test_preview_empty_cart(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {'items': []}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data['error']['fields'])

    def test_preview_inactive_variant(self):
        self.tyre.is_active = False
        self.tyre.save()
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_preview_invalid_quantity(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {'items': self.items((self.tyre, 0))}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_preview_without_dealer(self):
        """Test that a user without a dealer cannot price a cart."""
        self.client.force_authenticate(user=UserFactory(dealer=None))
        response = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'DEALER_REQUIRED')

    def test_admin_preview_unknown_dealer(self):
        self.client.force_authenticate(user=self.admin_user)
        response = self.client.post(self.url, {
            'items': self.items((self.tyre, 1)), 'dealer_id': str(uuid.uuid4())
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_dealer_user_cannot_price_for_other_dealer(self):
        """Test that dealer_id is ignored for dealer users."""
        other = DealerFactory()
        DiscountFactory(applicable_dealers=[other])
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'items': self.items((self.tyre, 1)), 'dealer_id': str(other.id)
        }, format='json')

        self.assertEqual(response.data['data']['discount_amount'], '0.00')

    def test_preview_catalog_unavailable(self):
        DiscountFactory()
        self.client.force_authenticate(user=self.user)

        with mock.patch('orders.utils.load_active_discounts', side_effect=CatalogUnavailable('timeout')):
            response = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['total_amount'], '100.00')
        self.assertEqual(len(response.data['data']['warnings']), 1)

    def test_preview_unauthenticated(self):
        response = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class OrderCheckoutAPITest(OrderAPITestMixin, APITestCase):
    """Test cases for the checkout endpoint."""

    def setUp(self):
        super().setUp()
        self.url = reverse('order-checkout')

    def test_create_order_success(self):
        """Test successful order creation with valid items."""
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {
            'items': self.items((self.tyre, 2), (self.oil, 1)),
            'notes': 'Deliver to the back door'
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])

        order = Order.objects.get(id=response.data['data']['id'])
        self.assertEqual(order.dealer, self.dealer)
        self.assertEqual(order.user, self.user)
        self.assertEqual(order.subtotal, Decimal('250.00'))
        self.assertEqual(order.total_amount, Decimal('250.00'))
        self.assertEqual(order.notes, 'Deliver to the back door')
        self.assertEqual(order.order_items.count(), 2)
        self.assertIn('breakdown', response.data['data'])

    def test_checkout_applies_and_redeems_discount(self):
        """Test that a discount used on several lines is counted once per order."""
        discount = DiscountFactory(name='Spring', discount_value=Decimal('10.00'), usage_limit=5)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'items': self.items((self.tyre, 2), (self.winter_tyre, 1))
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data['data']
        self.assertEqual(data['subtotal'], '280.00')
        self.assertEqual(data['discount_amount'], '28.00')
        self.assertEqual(data['total_amount'], '252.00')

        discount.refresh_from_db()
        self.assertEqual(discount.usage_count, 1)

        applied = AppliedDiscount.objects.get(order_id=data['id'])
        self.assertEqual(applied.discount, discount)
        self.assertEqual(applied.dealer, self.dealer)
        self.assertEqual(applied.discount_amount, Decimal('28.00'))
        self.assertEqual(applied.order_total, Decimal('252.00'))
        self.assertEqual(applied.metadata['discount_name'], 'Spring')
        self.assertTrue(DiscountEvent.objects.filter(
            discount=discount, event_type=DiscountEventType.APPLIED
        ).exists())

    def test_checkout_line_amounts(self):
        DiscountFactory(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('15.00'),
                        applicable_variants=[self.tyre])
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {'items': self.items((self.tyre, 2))}, format='json')

        item = OrderItem.objects.get(order_id=response.data['data']['id'])
        self.assertEqual(item.quantity, 2)
        self.assertEqual(item.unit_rate, Decimal('100.00'))
        self.assertEqual(item.discount_amount, Decimal('15.00'))
        self.assertEqual(item.amount, Decimal('185.00'))
        self.assertEqual(item.line_total, Decimal('200.00'))

    def test_checkout_stores_discount_code(self):
        DiscountFactory(discount_code='VIP', auto_apply=False)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'items': self.items((self.tyre, 1)), 'discount_code': 'vip'
        }, format='json')

        self.assertEqual(response.data['data']['discount_code'], 'VIP')
        self.assertEqual(response.data['data']['discount_amount'], '10.00')

    def test_checkout_usage_limit_reached_before_commit(self):
        """Test that a discount exhausted during checkout is dropped and the order re-priced."""
        discount = DiscountFactory(name='Last one', usage_limit=1)
        self.client.force_authenticate(user=self.user)

        with mock.patch('discounts.utils.try_increment_usage', return_value=False) as increment:
            response = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(increment.call_count, 1)

        data = response.data['data']
        self.assertEqual(data['discount_amount'], '0.00')
        self.assertEqual(data['total_amount'], '100.00')
        self.assertIn(
            'Discount Last one reached its usage limit and was removed from this order.',
            data['pricing_warnings']
        )
        self.assertEqual(Order.objects.count(), 1)
        self.assertFalse(AppliedDiscount.objects.exists())
        discount.refresh_from_db()
        self.assertEqual(discount.usage_count, 0)

    def test_checkout_falls_back_to_next_discount(self):
        """Test that re-pricing picks the next best discount when the best runs out."""
        best = DiscountFactory(name='Best', discount_value=Decimal('30.00'), usage_limit=1)
        DiscountFactory(name='Fallback', discount_value=Decimal('5.00'))
        self.client.force_authenticate(user=self.user)

        from discounts.catalog import try_increment_usage as real_increment

        def increment(discount_id):
            if str(discount_id) == str(best.id):
                return False
            return real_increment(discount_id)

        with mock.patch('discounts.utils.try_increment_usage', side_effect=increment):
            response = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        data = response.data['data']
        self.assertEqual(data['discount_amount'], '5.00')
        self.assertEqual([a['discount_name'] for a in data['applied_discounts']], ['Fallback'])

    def test_exhausted_discount_not_offered(self):
        """Test that a discount at its usage limit is not applied at all."""
        DiscountFactory(usage_limit=1, usage_count=1)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        self.assertEqual(response.data['data']['discount_amount'], '0.00')

    def test_per_dealer_limit(self):
        """Test that a dealer cannot redeem a discount more often than allowed."""
        DiscountFactory(usage_limit_per_customer=1)
        self.client.force_authenticate(user=self.user)

        first = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')
        second = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        self.assertEqual(first.data['data']['discount_amount'], '10.00')
        self.assertEqual(second.data['data']['discount_amount'], '0.00')

        other_user = UserFactory()
        self.client.force_authenticate(user=other_user)
        third = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')
        self.assertEqual(third.data['data']['discount_amount'], '10.00')

    def test_admin_checkout_for_dealer(self):
        self.client.force_authenticate(user=self.admin_user)
        response = self.client.post(self.url, {
            'items': self.items((self.oil, 1)), 'dealer_id': str(self.dealer.id)
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        order = Order.objects.get(id=response.data['data']['id'])
        self.assertEqual(order.dealer, self.dealer)
        self.assertEqual(order.user, self.admin_user)

    def test_checkout_catalog_unavailable(self):
        """Test that an order is still placed when discounts cannot be loaded."""
        DiscountFactory()
        self.client.force_authenticate(user=self.user)

        with mock.patch('orders.utils.load_active_discounts', side_effect=CatalogUnavailable('timeout')):
            response = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['total_amount'], '100.00')
        self.assertEqual(len(response.data['data']['pricing_warnings']), 1)

    def test_checkout_validation_error(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.url, {
            'items': [{'product_variant_id': str(uuid.uuid4()), 'quantity': 1}]
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Order.objects.exists())

    def test_order_numbers_increase(self):
        self.client.force_authenticate(user=self.user)
        first = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')
        second = self.client.post(self.url, {'items': self.items((self.tyre, 1))}, format='json')

        self.assertGreater(second.data['data']['order_number'], first.data['data']['order_number'])


class OrderRetrieveAPITest(OrderAPITestMixin, APITestCase):
    """Test cases for order list and detail endpoints."""

    def setUp(self):
        super().setUp()
        self.order = OrderFactory(dealer=self.dealer, user=self.user)
        OrderItemFactory(order=self.order, product_variant=self.tyre)
        self.other_order = OrderFactory()

    def test_get_order_detail(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get(reverse('order-detail', kwargs={'order_id': self.order.id}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['id'], str(self.order.id))
        self.assertEqual(len(response.data['data']['order_items']), 1)
        self.assertEqual(response.data['data']['dealer_name'], self.dealer.name)

    def test_get_other_dealers_order(self):
        """Test that dealer users cannot see another dealer's order."""
        self.client.force_authenticate(user=self.user)
        response = self.client.get(reverse('order-detail', kwargs={'order_id': self.other_order.id}))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_admin_gets_any_order(self):
        self.client.force_authenticate(user=self.admin_user)
        response = self.client.get(reverse('order-detail', kwargs={'order_id': self.other_order.id}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_list_own_orders(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get(reverse('order-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['pagination']['count'], 1)
        self.assertEqual(response.data['data'][0]['id'], str(self.order.id))

    def test_admin_lists_by_dealer(self):
        self.client.force_authenticate(user=self.admin_user)

        everything = self.client.get(reverse('order-list'))
        filtered = self.client.get(reverse('order-list'), {'dealer_id': str(self.dealer.id)})

        self.assertEqual(everything.data['pagination']['count'], 2)
        self.assertEqual(filtered.data['pagination']['count'], 1)


class PlaceOrderTest(TestCase):
    """Test cases for place_order called directly."""

    def setUp(self):
        cache.clear()
        self.dealer = DealerFactory()
        self.user = UserFactory(dealer=self.dealer)
        self.variant = ProductVariantFactory(price=Decimal('40.00'))

    def test_place_order_returns_pricing(self):
        DiscountFactory(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('5.00'))

        order, pricing = place_order(
            self.user, self.dealer, [{'product_variant_id': self.variant.id, 'quantity': 3}]
        )

        self.assertEqual(order.total_amount, pricing.total_amount)
        self.assertEqual(pricing.subtotal, Decimal('120.00'))
        self.assertEqual(pricing.discount_amount, Decimal('5.00'))
        self.assertEqual(order.applied_discounts.count(), 1)

    def test_build_line_items_rejects_unknown_variant(self):
        from django.core.exceptions import ValidationError

        with self.assertRaises(ValidationError) as ctx:
            build_line_items([{'product_variant_id': uuid.uuid4(), 'quantity': 1}])
        self.assertIn('items', ctx.exception.message_dict)

    def test_per_dealer_limit_rechecked_at_commit(self):
        """Test that a redemption committed after pricing still counts against the dealer."""
        discount = DiscountFactory(name='Once per dealer', usage_limit_per_customer=1)
        AppliedDiscountFactory(
            discount=discount, order=OrderFactory(dealer=self.dealer, user=self.user), dealer=self.dealer
        )

        with mock.patch('orders.utils.get_dealer_usage_counts', return_value={}):
            order, pricing = place_order(
                self.user, self.dealer, [{'product_variant_id': self.variant.id, 'quantity': 1}]
            )

        self.assertEqual(pricing.discount_amount, Decimal('0.00'))
        self.assertFalse(order.applied_discounts.exists())
        self.assertIn(
            'Discount Once per dealer reached its usage limit and was removed from this order.',
            pricing.warnings
        )
        discount.refresh_from_db()
        self.assertEqual(discount.usage_count, 0)
