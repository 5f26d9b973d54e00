from datetime import timedelta
from decimal import Decimal

import factory
from django.utils import timezone
from factory.django import DjangoModelFactory

from discounts import DiscountType
from discounts.models import Discount, AppliedDiscount
from orders.factories import OrderFactory


class DiscountFactory(DjangoModelFactory):
    """Factory for Discount model."""

    class Meta:
        model = Discount
        skip_postgeneration_save = True

    name = factory.Sequence(lambda n: f'Discount {n}')
    description = factory.Faker('sentence')
    discount_type = DiscountType.PERCENTAGE
    discount_value = Decimal('10.00')
    start_date = factory.LazyFunction(lambda: timezone.now() - timedelta(days=1))
    end_date = factory.LazyFunction(lambda: timezone.now() + timedelta(days=30))
    is_active = True
    auto_apply = True
    stackable = False
    priority = 0

    @factory.post_generation
    def applicable_variants(self, create, extracted, **kwargs):
        if create and extracted:
            self.applicable_variants.set(extracted)

    @factory.post_generation
    def applicable_categories(self, create, extracted, **kwargs):
        if create and extracted:
            self.applicable_categories.set(extracted)

    @factory.post_generation
    def applicable_dealers(self, create, extracted, **kwargs):
        if create and extracted:
            self.applicable_dealers.set(extracted)


class AppliedDiscountFactory(DjangoModelFactory):
    """Factory for AppliedDiscount model."""

    class Meta:
        model = AppliedDiscount

    order = factory.SubFactory(OrderFactory)
    discount = factory.SubFactory(DiscountFactory)
    dealer = factory.SelfAttribute('order.dealer')
    user = factory.SelfAttribute('order.user')
    discount_amount = Decimal('10.00')
    order_total = Decimal('90.00')
    metadata = None
