import uuid
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.admin.sites import AdminSite
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.test import RequestFactory, SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from core import EntityStatus
from discounts import DiscountType, DiscountScope, DiscountEventType, ValidityStatus
from discounts.admin import DiscountAdmin
from discounts.cache import cache_active_discount_ids, get_cached_active_discount_ids
from discounts.catalog import (
    load_active_discounts,
    try_increment_usage,
    get_dealer_usage_counts,
    find_discount_by_code,
)
from discounts.events import discount_event, record_discount_event
from discounts.exceptions import CatalogUnavailable
from discounts.factories import DiscountFactory, AppliedDiscountFactory
from discounts.models import Discount, DiscountEvent
from discounts.validators import validate_discount_data
from orders.factories import (
    UserFactory, DealerFactory, CategoryFactory, ProductFactory,
    ProductVariantFactory, VariantPriceFactory, OrderFactory
)


class DiscountAPITest(APITestCase):
    """Test cases for Discount API endpoints."""

    def setUp(self):
        """Set up test data before each test."""
        self.client = APIClient()
        cache.clear()

        # Create admin user
        self.admin_user = UserFactory(email='admin@example.com', is_staff=True, is_superuser=True, dealer=None)
        self.admin_user.set_password('adminpass123')
        self.admin_user.save()

        # Create dealer user
        self.regular_user = UserFactory(email='user@example.com')
        self.regular_user.set_password('userpass123')
        self.regular_user.save()

        # Create category and product for testing
        self.category = CategoryFactory(name='Tyres')
        self.product = ProductFactory(name='All-season tyre', category=self.category)
        self.variant = ProductVariantFactory(product=self.product, price=Decimal('100.00'))

        self.general_discount = DiscountFactory(
            name='10% Everything',
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal('10.00'),
            minimum_order_amount=Decimal('100.00')
        )

        self.category_discount = DiscountFactory(
            name='Tyres 15% Off',
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal('15.00'),
            applicable_categories=[self.category]
        )

        self.variant_discount = DiscountFactory(
            name='20 Off Variant',
            discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=Decimal('20.00'),
            applicable_variants=[self.variant],
            stackable=True
        )

    def authenticate_admin(self):
        """Authenticate as admin user."""
        self.client.force_authenticate(user=self.admin_user)

    def authenticate_user(self):
        """Authenticate as dealer user."""
        self.client.force_authenticate(user=self.regular_user)

    def valid_payload(self, **overrides):
        now = timezone.now()
        payload = {
            'name': 'Spring campaign',
            'discount_type': DiscountType.PERCENTAGE,
            'discount_value': '12.50',
            'start_date': now.isoformat(),
            'end_date': (now + timedelta(days=10)).isoformat(),
        }
        payload.update(overrides)
        return payload

    # ==================== LIST Tests ====================

    def test_list_discounts_as_admin(self):
        """Test listing discounts as admin."""
        self.authenticate_admin()
        response = self.client.get(reverse('discount-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(len(response.data['data']), 3)

    def test_list_discounts_as_regular_user(self):
        """Test that dealer users cannot list discounts."""
        self.authenticate_user()
        response = self.client.get(reverse('discount-list'))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_discounts_unauthenticated(self):
        """Test that unauthenticated users cannot list discounts."""
        response = self.client.get(reverse('discount-list'))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_list_discounts_filter_by_discount_type(self):
        """Test filtering discounts by discount type."""
        self.authenticate_admin()
        response = self.client.get(reverse('discount-list'), {'discount_type': DiscountType.FIXED_AMOUNT})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 1)
        self.assertEqual(response.data['data'][0]['name'], '20 Off Variant')

    def test_list_hides_deleted_discounts(self):
        """Test that deleted discounts only show up when asked for."""
        self.general_discount.soft_delete()
        self.authenticate_admin()

        response = self.client.get(reverse('discount-list'))
        self.assertEqual(len(response.data['data']), 2)

        response = self.client.get(reverse('discount-list'), {'status': EntityStatus.DELETED})
        self.assertEqual(len(response.data['data']), 1)
        self.assertEqual(response.data['data'][0]['id'], str(self.general_discount.id))

    def test_list_ordered_by_priority(self):
        """Test that higher priority discounts come first."""
        DiscountFactory(name='Top', priority=90)
        self.authenticate_admin()

        response = self.client.get(reverse('discount-list'))

        self.assertEqual(response.data['data'][0]['name'], 'Top')

    # ==================== CREATE Tests ====================

    def test_create_general_discount(self):
        """Test creating a discount without scope covers all products."""
        self.authenticate_admin()
        response = self.client.post(reverse('discount-list'), self.valid_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['scope'], DiscountScope.GENERAL)
        self.assertEqual(response.data['data']['scope_description'], 'All products')
        self.assertEqual(response.data['data']['validity_status'], ValidityStatus.ACTIVE)

        discount = Discount.objects.get(id=response.data['data']['id'])
        self.assertEqual(discount.usage_count, 0)
        self.assertEqual(discount.status, EntityStatus.ACTIVE)

    def test_create_records_created_event(self):
        """Test that creating a discount writes a CREATED outbox row."""
        self.authenticate_admin()
        response = self.client.post(reverse('discount-list'), self.valid_payload(), format='json')

        events = DiscountEvent.objects.filter(discount_id=response.data['data']['id'])
        self.assertEqual(events.count(), 1)
        self.assertEqual(events.first().event_type, DiscountEventType.CREATED)

    def test_create_category_discount_for_dealers(self):
        """Test creating a category discount restricted to one dealer."""
        self.authenticate_admin()
        payload = self.valid_payload(
            applicable_categories=[str(self.category.id)],
            applicable_dealers=[str(self.regular_user.dealer_id)],
        )
        response = self.client.post(reverse('discount-list'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['scope'], DiscountScope.CATEGORY)
        self.assertEqual(response.data['data']['scope_description'], 'Categories (1), dealers (1)')

    def test_create_discount_code_uppercased(self):
        """Test that promo codes are stored upper-case."""
        self.authenticate_admin()
        payload = self.valid_payload(discount_code=' vip10 ', auto_apply=False)
        response = self.client.post(reverse('discount-list'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['discount_code'], 'VIP10')

    def test_create_discount_invalid_percentage(self):
        """Test that a percentage above 100 is rejected."""
        self.authenticate_admin()
        response = self.client.post(
            reverse('discount-list'), self.valid_payload(discount_value='150'), format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('discount_value', response.data['error']['fields'])

    def test_create_discount_end_before_start(self):
        self.authenticate_admin()
        now = timezone.now()
        payload = self.valid_payload(
            start_date=now.isoformat(), end_date=(now - timedelta(days=1)).isoformat()
        )
        response = self.client.post(reverse('discount-list'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('end_date', response.data['error']['fields'])

    def test_create_discount_with_variants_and_categories(self):
        """Test that variants and categories cannot both be set."""
        self.authenticate_admin()
        payload = self.valid_payload(
            applicable_variants=[str(self.variant.id)],
            applicable_categories=[str(self.category.id)],
        )
        response = self.client.post(reverse('discount-list'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('applicable_categories', response.data['error']['fields'])

    def test_create_code_only_discount_without_code(self):
        """Test that a discount that is not auto-applied needs a code."""
        self.authenticate_admin()
        response = self.client.post(
            reverse('discount-list'), self.valid_payload(auto_apply=False), format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('discount_code', response.data['error']['fields'])

    def test_create_duplicate_code(self):
        DiscountFactory(discount_code='DUP')
        self.authenticate_admin()
        response = self.client.post(
            reverse('discount-list'), self.valid_payload(discount_code='DUP'), format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('discount_code', response.data['error']['fields'])

    def test_create_as_regular_user_forbidden(self):
        self.authenticate_user()
        response = self.client.post(reverse('discount-list'), self.valid_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    # ==================== RETRIEVE Tests ====================

    def test_retrieve_discount(self):
        """Test retrieving a specific discount."""
        self.authenticate_admin()
        url = reverse('discount-detail', kwargs={'pk': self.variant_discount.id})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['name'], '20 Off Variant')
        self.assertEqual(response.data['data']['scope'], DiscountScope.VARIANT)
        self.assertEqual(response.data['data']['scope_description'], 'Selected variants (1)')

    def test_retrieve_nonexistent_discount(self):
        """Test retrieving a non-existent discount."""
        self.authenticate_admin()
        url = reverse('discount-detail', kwargs={'pk': uuid.uuid4()})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'NOT_FOUND')

    # ==================== UPDATE Tests ====================

    def test_partial_update_discount(self):
        """Test partially updating a discount."""
        self.authenticate_admin()
        url = reverse('discount-detail', kwargs={'pk': self.general_discount.id})
        response = self.client.patch(url, {'discount_value': '25.00'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.general_discount.refresh_from_db()
        self.assertEqual(self.general_discount.discount_value, Decimal('25.00'))

    def test_update_dates_records_updated_event(self):
        """Test that moving the end date is announced."""
        self.authenticate_admin()
        url = reverse('discount-detail', kwargs={'pk': self.general_discount.id})
        new_end = (timezone.now() + timedelta(days=60)).isoformat()
        self.client.patch(url, {'end_date': new_end}, format='json')

        event = DiscountEvent.objects.get(
            discount=self.general_discount, event_type=DiscountEventType.UPDATED
        )
        self.assertEqual(event.payload['changed_fields'], ['end_date'])

    def test_update_toggle_active_records_event(self):
        self.authenticate_admin()
        url = reverse('discount-detail', kwargs={'pk': self.general_discount.id})
        response = self.client.patch(url, {'is_active': False}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['data']['is_active'])
        self.assertEqual(response.data['data']['validity_status'], ValidityStatus.INACTIVE)
        self.assertTrue(DiscountEvent.objects.filter(
            discount=self.general_discount, event_type=DiscountEventType.UPDATED
        ).exists())

    def test_update_name_records_no_event(self):
        """Test that cosmetic edits are not announced."""
        self.authenticate_admin()
        url = reverse('discount-detail', kwargs={'pk': self.general_discount.id})
        self.client.patch(url, {'name': 'Renamed'}, format='json')

        self.assertFalse(DiscountEvent.objects.filter(discount=self.general_discount).exists())

    def test_update_validates_merged_values(self):
        """Test that a partial update is checked against the stored type."""
        self.authenticate_admin()
        url = reverse('discount-detail', kwargs={'pk': self.general_discount.id})
        response = self.client.patch(url, {'discount_value': '101'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_deleted_discount(self):
        self.general_discount.soft_delete()
        self.authenticate_admin()
        url = reverse('discount-detail', kwargs={'pk': self.general_discount.id})
        response = self.client.patch(url, {'name': 'Back'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    # ==================== DELETE Tests ====================

    def test_delete_discount(self):
        """Test soft deleting a discount."""
        self.authenticate_admin()
        url = reverse('discount-detail', kwargs={'pk': self.general_discount.id})
        response = self.client.delete(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)

        # Verify soft delete
        self.general_discount.refresh_from_db()
        self.assertEqual(self.general_discount.status, EntityStatus.DELETED)
        self.assertFalse(Discount.live_objects.filter(id=self.general_discount.id).exists())

    def test_delete_nonexistent_discount(self):
        self.authenticate_admin()
        url = reverse('discount-detail', kwargs={'pk': uuid.uuid4()})
        response = self.client.delete(url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    # ==================== RESTORE Tests ====================

    def test_restore_deleted_discount(self):
        self.general_discount.soft_delete()
        self.authenticate_admin()
        url = reverse('discount-restore', kwargs={'pk': self.general_discount.id})
        response = self.client.post(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.general_discount.refresh_from_db()
        self.assertEqual(self.general_discount.status, EntityStatus.ACTIVE)

    def test_restore_live_discount(self):
        """Test that only deleted discounts can be restored."""
        self.authenticate_admin()
        url = reverse('discount-restore', kwargs={'pk': self.general_discount.id})
        response = self.client.post(url)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'NOT_DELETED')

    # ==================== ACTIVE Action Tests ====================

    def test_get_active_discounts(self):
        """Test the active endpoint skips switched off, expired and deleted discounts."""
        now = timezone.now()
        DiscountFactory(name='Switched off', is_active=False)
        DiscountFactory(name='Expired', start_date=now - timedelta(days=10), end_date=now - timedelta(days=1))
        DiscountFactory(name='Deleted').soft_delete()

        self.authenticate_admin()
        response = self.client.get(reverse('discount-active'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = {item['name'] for item in response.data['data']}
        self.assertEqual(names, {'10% Everything', 'Tyres 15% Off', '20 Off Variant'})


class DiscountCalculateAPITest(APITestCase):
    """Test cases for the single-line calculate endpoint."""

    def setUp(self):
        self.client = APIClient()
        cache.clear()

        self.dealer = DealerFactory()
        self.user = UserFactory(dealer=self.dealer)
        self.admin_user = UserFactory(is_staff=True, dealer=None)

        self.category = CategoryFactory()
        self.variant = ProductVariantFactory(
            product=ProductFactory(category=self.category), price=Decimal('100.00')
        )
        self.url = reverse('discount-calculate')

    def test_calculate_with_percentage_discount(self):
        """Test scenario: 15% off 5 units at 100."""
        DiscountFactory(discount_value=Decimal('15.00'), applicable_categories=[self.category])
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'variant_id': str(self.variant.id), 'quantity': 5
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['original_total'], '500.00')
        self.assertEqual(data['discount_amount'], '75.00')
        self.assertEqual(data['final_total'], '425.00')
        self.assertEqual(data['best_discount']['discounted_unit_price'], '85.00')
        self.assertEqual(data['warnings'], [])

    def test_calculate_uses_dealer_price(self):
        """Test that the dealer's price list entry replaces the list price."""
        VariantPriceFactory(variant=self.variant, dealer=self.dealer, amount=Decimal('80.00'))
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'variant_id': str(self.variant.id), 'quantity': 2
        }, format='json')

        self.assertEqual(response.data['data']['original_total'], '160.00')

    def test_calculate_explicit_unit_price(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'variant_id': str(self.variant.id), 'quantity': 1, 'unit_price': '20.00'
        }, format='json')

        self.assertEqual(response.data['data']['original_total'], '20.00')

    def test_calculate_ignores_other_dealers_discount(self):
        DiscountFactory(applicable_dealers=[DealerFactory()])
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'variant_id': str(self.variant.id), 'quantity': 1
        }, format='json')

        self.assertEqual(response.data['data']['discount_amount'], '0.00')
        self.assertIsNone(response.data['data']['best_discount'])

    def test_calculate_with_discount_code(self):
        """Test that a code-only discount applies once its code is given."""
        DiscountFactory(discount_code='VIP20', auto_apply=False, discount_value=Decimal('20.00'))
        self.client.force_authenticate(user=self.user)

        without_code = self.client.post(self.url, {
            'variant_id': str(self.variant.id), 'quantity': 1
        }, format='json')
        with_code = self.client.post(self.url, {
            'variant_id': str(self.variant.id), 'quantity': 1, 'discount_code': 'vip20'
        }, format='json')

        self.assertEqual(without_code.data['data']['discount_amount'], '0.00')
        self.assertEqual(with_code.data['data']['discount_amount'], '20.00')

    def test_calculate_invalid_code(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'variant_id': str(self.variant.id), 'quantity': 1, 'discount_code': 'NOPE'
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('discount_code', response.data['error']['fields'])

    def test_calculate_invalid_quantity(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'variant_id': str(self.variant.id), 'quantity': 0
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('quantity', response.data['error']['fields'])

    def test_calculate_unknown_variant(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {'variant_id': str(uuid.uuid4()), 'quantity': 1}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_admin_calculates_for_dealer(self):
        """Test that administrators can price on behalf of a dealer."""
        DiscountFactory(applicable_dealers=[self.dealer])
        self.client.force_authenticate(user=self.admin_user)

        response = self.client.post(self.url, {
            'variant_id': str(self.variant.id), 'quantity': 1, 'dealer_id': str(self.dealer.id)
        }, format='json')

        self.assertEqual(response.data['data']['discount_amount'], '10.00')

    def test_admin_calculates_for_unknown_dealer(self):
        self.client.force_authenticate(user=self.admin_user)

        response = self.client.post(self.url, {
            'variant_id': str(self.variant.id), 'quantity': 1, 'dealer_id': str(uuid.uuid4())
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_calculate_catalog_unavailable(self):
        """Test that a catalog failure prices without discounts."""
        DiscountFactory()
        self.client.force_authenticate(user=self.user)

        with mock.patch('discounts.views.load_active_discounts', side_effect=CatalogUnavailable('timeout')):
            response = self.client.post(self.url, {
                'variant_id': str(self.variant.id), 'quantity': 1
            }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['discount_amount'], '0.00')
        self.assertEqual(len(response.data['data']['warnings']), 1)

    def test_calculate_zero_list_price(self):
        """Test that a variant without a usable price is rejected with a field error."""
        variant = ProductVariantFactory(product=ProductFactory(category=self.category), price=Decimal('0'))
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {
            'variant_id': str(variant.id), 'quantity': 1
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')
        self.assertIn('unit_price', response.data['error']['fields'])

    def test_calculate_code_lookup_database_error(self):
        self.client.force_authenticate(user=self.user)

        with mock.patch('discounts.views.find_discount_by_code', side_effect=DatabaseError('down')):
            response = self.client.post(self.url, {
                'variant_id': str(self.variant.id), 'quantity': 1, 'discount_code': 'VIP20'
            }, format='json')

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['error']['code'], 'DATABASE_ERROR')


class AppliedDiscountAPITest(APITestCase):
    """Test cases for the applied discounts ledger endpoints."""

    def setUp(self):
        self.client = APIClient()
        self.dealer = DealerFactory()
        self.user = UserFactory(dealer=self.dealer)
        self.admin_user = UserFactory(is_staff=True, dealer=None)

        self.own = AppliedDiscountFactory(order=OrderFactory(dealer=self.dealer))
        self.other = AppliedDiscountFactory()

    def test_admin_sees_all(self):
        self.client.force_authenticate(user=self.admin_user)
        response = self.client.get(reverse('applied-discount-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['pagination']['count'], 2)

    def test_dealer_sees_own(self):
        """Test that dealer users only see their dealer's redemptions."""
        self.client.force_authenticate(user=self.user)
        response = self.client.get(reverse('applied-discount-list'))

        self.assertEqual(response.data['pagination']['count'], 1)
        self.assertEqual(response.data['data'][0]['id'], str(self.own.id))

    def test_dealer_cannot_retrieve_other(self):
        self.client.force_authenticate(user=self.user)
        url = reverse('applied-discount-detail', kwargs={'pk': self.other.id})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_retrieve_own(self):
        self.client.force_authenticate(user=self.user)
        url = reverse('applied-discount-detail', kwargs={'pk': self.own.id})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['discount_name'], self.own.discount.name)


class DiscountModelTest(TestCase):
    """Test cases for Discount model."""

    def test_blank_code_stored_as_null(self):
        """Test that several discounts without a code do not collide."""
        first = DiscountFactory(discount_code='')
        second = DiscountFactory(discount_code='  ')

        self.assertIsNone(first.discount_code)
        self.assertIsNone(second.discount_code)

    def test_scope_from_relations(self):
        category = CategoryFactory()
        variant = ProductVariantFactory()

        self.assertEqual(DiscountFactory().scope, DiscountScope.GENERAL)
        self.assertEqual(DiscountFactory(applicable_categories=[category]).scope, DiscountScope.CATEGORY)
        self.assertEqual(DiscountFactory(applicable_variants=[variant]).scope, DiscountScope.VARIANT)

    def test_remaining_usage(self):
        self.assertIsNone(DiscountFactory().remaining_usage)
        self.assertEqual(DiscountFactory(usage_limit=5, usage_count=2).remaining_usage, 3)
        self.assertEqual(DiscountFactory(usage_limit=5, usage_count=5).remaining_usage, 0)

    def test_has_usage_left(self):
        self.assertTrue(DiscountFactory().has_usage_left)
        self.assertFalse(DiscountFactory(usage_limit=1, usage_count=1).has_usage_left)

    def test_validity_status(self):
        now = timezone.now()
        discount = DiscountFactory(usage_limit=1, usage_count=1)

        self.assertEqual(discount.validity_status(now), ValidityStatus.USAGE_EXHAUSTED)
        self.assertEqual(discount.validity_status(now + timedelta(days=31)), ValidityStatus.EXPIRED)
        self.assertEqual(discount.validity_status(now - timedelta(days=2)), ValidityStatus.NOT_YET_STARTED)

    def test_clean_validates(self):
        discount = DiscountFactory.build(discount_value=Decimal('0'))

        with self.assertRaises(ValidationError) as ctx:
            discount.full_clean()
        self.assertIn('discount_value', ctx.exception.message_dict)


class DiscountAdminTest(TestCase):
    """Test cases for deleting discounts from the admin site."""

    def setUp(self):
        cache.clear()
        self.model_admin = DiscountAdmin(Discount, AdminSite())
        self.request = RequestFactory().post('/admin/discounts/discount/')
        self.request.user = UserFactory(is_staff=True, is_superuser=True, dealer=None)

    def test_delete_model_soft_deletes(self):
        discount = DiscountFactory()
        cache_active_discount_ids([str(discount.id)])

        self.model_admin.delete_model(self.request, discount)

        discount.refresh_from_db()
        self.assertEqual(discount.status, EntityStatus.DELETED)
        self.assertIsNone(get_cached_active_discount_ids())

    def test_delete_queryset_soft_deletes(self):
        DiscountFactory.create_batch(2)

        self.model_admin.delete_queryset(self.request, Discount.objects.all())

        self.assertEqual(Discount.objects.count(), 2)
        self.assertFalse(Discount.live_objects.exists())


class DiscountValidatorTest(SimpleTestCase):
    """Test cases for validate_discount_data."""

    def valid_data(self, **overrides):
        now = timezone.now()
        data = {
            'discount_type': DiscountType.PERCENTAGE,
            'discount_value': Decimal('10'),
            'start_date': now,
            'end_date': now + timedelta(days=1),
            'priority': 0,
            'auto_apply': True,
        }
        data.update(overrides)
        return data

    def assertInvalid(self, field, **overrides):
        with self.assertRaises(ValidationError) as ctx:
            validate_discount_data(self.valid_data(**overrides))
        self.assertIn(field, ctx.exception.message_dict)

    def test_valid_data_passes(self):
        validate_discount_data(self.valid_data())

    def test_fixed_amount_above_hundred_allowed(self):
        validate_discount_data(self.valid_data(
            discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal('500')
        ))

    def test_field_rules(self):
        """Test each rule reports against its own field."""
        now = timezone.now()
        self.assertInvalid('discount_value', discount_value=None)
        self.assertInvalid('discount_value', discount_value=Decimal('-1'))
        self.assertInvalid('discount_value', discount_value=Decimal('100.01'))
        self.assertInvalid('start_date', start_date=None)
        self.assertInvalid('end_date', start_date=now, end_date=now)
        self.assertInvalid('applicable_categories', applicable_variants=['v'], applicable_categories=['c'])
        self.assertInvalid('minimum_order_amount', minimum_order_amount=Decimal('-1'))
        self.assertInvalid('maximum_discount_amount', maximum_discount_amount='-0.01')
        self.assertInvalid('usage_limit', usage_limit=0)
        self.assertInvalid('usage_limit_per_customer', usage_limit_per_customer=0)
        self.assertInvalid('usage_limit_per_customer', usage_limit=2, usage_limit_per_customer=3)
        self.assertInvalid('priority', priority=101)
        self.assertInvalid('discount_code', auto_apply=False, discount_code='')

    def test_all_errors_reported_together(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_discount_data(self.valid_data(discount_value=None, priority=-1, usage_limit=0))

        self.assertEqual(
            set(ctx.exception.message_dict), {'discount_value', 'priority', 'usage_limit'}
        )


class DiscountCatalogTest(TestCase):
    """Test cases for the catalog read side and usage counter."""

    def setUp(self):
        cache.clear()
        self.dealer = DealerFactory()

    def test_load_active_discounts(self):
        """Test that only live, switched on discounts inside their window are loaded."""
        now = timezone.now()
        variant = ProductVariantFactory()
        live = DiscountFactory(applicable_variants=[variant], applicable_dealers=[self.dealer])
        DiscountFactory(is_active=False)
        DiscountFactory(start_date=now + timedelta(days=1), end_date=now + timedelta(days=5))
        DiscountFactory(start_date=now - timedelta(days=5), end_date=now - timedelta(days=1))
        DiscountFactory().soft_delete()

        snapshots = load_active_discounts(now, use_cache=False)

        self.assertEqual([s.id for s in snapshots], [live.id])
        self.assertEqual(snapshots[0].variant_ids, frozenset({variant.id}))
        self.assertEqual(snapshots[0].dealer_ids, frozenset({self.dealer.id}))
        self.assertEqual(snapshots[0].scope, DiscountScope.VARIANT)

    def test_load_uses_cached_ids(self):
        """Test that cached ids are re-read so changes to rows are seen."""
        discount = DiscountFactory()
        load_active_discounts()

        Discount.objects.filter(id=discount.id).update(usage_count=7)
        snapshots = load_active_discounts()

        self.assertEqual(snapshots[0].usage_count, 7)

    def test_load_includes_future_start_in_cached_ids(self):
        """Test that a discount starting later is picked up once it starts."""
        now = timezone.now()
        upcoming = DiscountFactory(start_date=now + timedelta(hours=1), end_date=now + timedelta(days=2))

        self.assertEqual(load_active_discounts(now), [])
        snapshots = load_active_discounts(now + timedelta(hours=2))
        self.assertEqual([s.id for s in snapshots], [upcoming.id])

    def test_database_error_raises_catalog_unavailable(self):
        with mock.patch('discounts.catalog._read_catalog', side_effect=DatabaseError('timeout')):
            with self.assertRaises(CatalogUnavailable):
                load_active_discounts()

    def test_try_increment_usage(self):
        """Test that the counter stops at the usage limit."""
        discount = DiscountFactory(usage_limit=2, usage_count=1)

        self.assertTrue(try_increment_usage(discount.id))
        self.assertFalse(try_increment_usage(discount.id))

        discount.refresh_from_db()
        self.assertEqual(discount.usage_count, 2)

    def test_try_increment_usage_unlimited(self):
        discount = DiscountFactory()

        for _ in range(3):
            self.assertTrue(try_increment_usage(discount.id))

        discount.refresh_from_db()
        self.assertEqual(discount.usage_count, 3)

    def test_dealer_usage_counts(self):
        discount = DiscountFactory()
        other = DiscountFactory()
        AppliedDiscountFactory(order=OrderFactory(dealer=self.dealer), discount=discount)
        AppliedDiscountFactory(order=OrderFactory(dealer=self.dealer), discount=discount)
        AppliedDiscountFactory(discount=other)

        self.assertEqual(get_dealer_usage_counts(self.dealer.id), {discount.id: 2})
        self.assertEqual(get_dealer_usage_counts(self.dealer.id, [other.id]), {})
        self.assertEqual(get_dealer_usage_counts(None), {})

    def test_find_discount_by_code(self):
        discount = DiscountFactory(discount_code='SAVE5')
        deleted = DiscountFactory(discount_code='GONE')
        deleted.soft_delete()

        self.assertEqual(find_discount_by_code(' save5 '), discount)
        self.assertIsNone(find_discount_by_code('GONE'))
        self.assertIsNone(find_discount_by_code(''))


class DiscountEventTest(TestCase):
    """Test cases for the discount outbox."""

    def test_record_event_writes_row_and_signals_on_commit(self):
        discount = DiscountFactory(name='Spring')
        received = []

        def handler(sender, event, **kwargs):
            received.append(event)

        discount_event.connect(handler)
        self.addCleanup(discount_event.disconnect, handler)

        with self.captureOnCommitCallbacks(execute=True):
            event = record_discount_event(DiscountEventType.SOON_EXPIRING, discount, days_until_expiration=2)

        self.assertEqual(received, [event])
        self.assertEqual(event.payload['name'], 'Spring')
        self.assertEqual(event.payload['days_until_expiration'], 2)
        self.assertIsNone(event.dispatched_at)

    def test_mark_dispatched(self):
        event = record_discount_event(DiscountEventType.CREATED, DiscountFactory())

        event.mark_dispatched()
        stamped = event.dispatched_at
        event.mark_dispatched()

        self.assertIsNotNone(stamped)
        self.assertEqual(event.dispatched_at, stamped)
