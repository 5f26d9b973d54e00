from decimal import Decimal

import factory
from factory.django import DjangoModelFactory

from accounts.backends import User
from accounts.models import Dealer
from orders.models import Order, OrderItem
from products.models import Category, Product, ProductVariant, VariantPrice


class DealerFactory(DjangoModelFactory):
    """Factory for Dealer model."""

    class Meta:
        model = Dealer

    name = factory.Faker('company')
    code = factory.Sequence(lambda n: f'DLR-{n:05d}')
    email = factory.Faker('company_email')
    phone = '+12025551234'
    country = 'US'
    city = factory.Faker('city')
    is_active = True


class UserFactory(DjangoModelFactory):
    """Factory for User model."""

    class Meta:
        model = User

    email = factory.Faker('email')
    first_name = factory.Faker('first_name')
    last_name = factory.Faker('last_name')
    dealer = factory.SubFactory(DealerFactory)
    is_active = True


class CategoryFactory(DjangoModelFactory):
    """Factory for Category model."""

    class Meta:
        model = Category

    name = factory.Sequence(lambda n: f'Category {n}')
    description = factory.Faker('sentence')
    is_active = True


class ProductFactory(DjangoModelFactory):
    """Factory for Product model."""

    class Meta:
        model = Product

    name = factory.Faker('catch_phrase')
    description = factory.Faker('paragraph')
    code = factory.Sequence(lambda n: f'PRD-{n:05d}')
    category = factory.SubFactory(CategoryFactory)
    is_active = True


class ProductVariantFactory(DjangoModelFactory):
    """Factory for ProductVariant model."""

    class Meta:
        model = ProductVariant

    name = factory.Sequence(lambda n: f'Size {n}')
    sku = factory.Sequence(lambda n: f'SKU-{n:06d}')
    product = factory.SubFactory(ProductFactory)
    price = factory.Faker('pydecimal', left_digits=4, right_digits=2, positive=True, min_value=10, max_value=5000)
    is_active = True


class VariantPriceFactory(DjangoModelFactory):
    """Factory for VariantPrice model."""

    class Meta:
        model = VariantPrice

    variant = factory.SubFactory(ProductVariantFactory)
    dealer = factory.SubFactory(DealerFactory)
    amount = Decimal('90.00')
    is_active = True


class OrderFactory(DjangoModelFactory):
    """Factory for Order model."""

    class Meta:
        model = Order

    dealer = factory.SubFactory(DealerFactory)
    user = factory.SubFactory(UserFactory, dealer=factory.SelfAttribute('..dealer'))
    subtotal = Decimal('100.00')
    discount_amount = Decimal('0.00')
    total_amount = Decimal('100.00')


class OrderItemFactory(DjangoModelFactory):
    """Factory for OrderItem model."""

    class Meta:
        model = OrderItem

    order = factory.SubFactory(OrderFactory)
    product_variant = factory.SubFactory(ProductVariantFactory)
    quantity = 1
    unit_rate = Decimal('100.00')
    amount = Decimal('100.00')
