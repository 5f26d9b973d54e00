from django.conf import settings
from django.db import models, connection

from core import Currency
from core.models import AbstractBaseModel
from orders import OrderStatus


def get_order_number():
    """Generate unique order number. Works with both PostgreSQL and SQLite."""

    # For PostgreSQL, use sequence
    if connection.vendor == 'postgresql':
        with connection.cursor() as cursor:
            cursor.execute("SELECT nextval('order_order_number_seq')")
            result = cursor.fetchone()
            return result[0]

    # For SQLite and others, use max + 1
    max_order = Order.objects.aggregate(models.Max('order_number'))['order_number__max']
    return (max_order or 0) + 1


class Order(AbstractBaseModel):
    """
    A dealer's order. Amounts are written once, at checkout, from the
    pricing result; they are never recomputed from the lines afterwards.
    """
    dealer = models.ForeignKey(
        'accounts.Dealer', on_delete=models.PROTECT, related_name='orders'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='orders'
    )
    order_number = models.IntegerField(
        unique=True, default=get_order_number, editable=False)

    subtotal = models.DecimalField(
        max_digits=12, decimal_places=2, default=0)
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=0)
    currency = models.CharField(
        max_length=8, choices=Currency.CHOICES,
        default=Currency.TRY)
    order_status = models.CharField(
        max_length=32, choices=OrderStatus.CHOICES,
        default=OrderStatus.PENDING)

    discount_code = models.CharField(
        max_length=64, blank=True,
        help_text='promo code entered at checkout'
    )
    pricing_warnings = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)

    objects = models.Manager()

    def __str__(self):
        return f"#{self.order_number} - {self.dealer_id}"


class OrderItem(AbstractBaseModel):
    """
    OrderItem Model for storing the details of each item in an order.
    """
    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, related_name='order_items')
    product_variant = models.ForeignKey(
        'products.ProductVariant', on_delete=models.PROTECT, related_name='order_items'
    )
    quantity = models.PositiveIntegerField(
        default=1,
        help_text="ordered quantity")
    unit_rate = models.DecimalField(
        max_digits=12, decimal_places=2,
        default=0,
        help_text='unit price charged to the dealer before discounts'
    )
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=0)
    amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=0,
        help_text='line total after discounts'
    )

    objects = models.Manager()

    class Meta:
        unique_together = ('order', 'product_variant')
        verbose_name = 'Order Item'
        verbose_name_plural = 'Order Items'

    @property
    def line_total(self):
        return self.quantity * self.unit_rate
