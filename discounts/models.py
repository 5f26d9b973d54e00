from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import AbstractUUID, AbstractMonitor, AbstractStatus, AbstractBaseModel
from core.validators import validate_non_negative_amount
from discounts import DiscountScope, DiscountType, DiscountEventType


class Discount(AbstractUUID, AbstractMonitor, AbstractStatus):
    """
    A discount campaign.

    Scope is derived from the relations: no variants and no categories means
    the discount covers every variant. Dealer restriction is independent of
    scope; an empty dealer set means every dealer.
    """
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)

    discount_type = models.CharField(
        max_length=20, choices=DiscountType.CHOICES
    )
    discount_value = models.DecimalField(
        max_digits=12, decimal_places=2
    )

    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Campaign switch, independent of the date window"
    )

    minimum_order_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True,
        validators=[validate_non_negative_amount]
    )
    maximum_discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True,
        validators=[validate_non_negative_amount]
    )

    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    usage_count = models.PositiveIntegerField(default=0)
    usage_limit_per_customer = models.PositiveIntegerField(null=True, blank=True)

    discount_code = models.CharField(
        max_length=64, unique=True, null=True, blank=True,
        help_text="Promo code the dealer enters at checkout"
    )
    auto_apply = models.BooleanField(default=True)
    priority = models.PositiveSmallIntegerField(
        default=0, help_text="0-100, higher wins ties"
    )
    stackable = models.BooleanField(default=False)

    applicable_variants = models.ManyToManyField(
        'products.ProductVariant', blank=True, related_name='discounts'
    )
    applicable_categories = models.ManyToManyField(
        'products.Category', blank=True, related_name='discounts'
    )
    applicable_dealers = models.ManyToManyField(
        'accounts.Dealer', blank=True, related_name='discounts'
    )

    class Meta:
        verbose_name = 'Discount'
        verbose_name_plural = 'Discounts'
        ordering = ('-priority', 'id')

    def __str__(self):
        return self.name

    def clean(self):
        from discounts.validators import validate_discount_data

        super().clean()
        validate_discount_data({
            'discount_type': self.discount_type,
            'discount_value': self.discount_value,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'minimum_order_amount': self.minimum_order_amount,
            'maximum_discount_amount': self.maximum_discount_amount,
            'usage_limit': self.usage_limit,
            'usage_limit_per_customer': self.usage_limit_per_customer,
            'priority': self.priority,
            'auto_apply': self.auto_apply,
            'discount_code': self.discount_code,
        })

    def save(self, *args, **kwargs):
        self.discount_code = (self.discount_code or '').strip().upper() or None
        super().save(*args, **kwargs)

    @property
    def scope(self):
        if self.applicable_variants.exists():
            return DiscountScope.VARIANT
        if self.applicable_categories.exists():
            return DiscountScope.CATEGORY
        return DiscountScope.GENERAL

    @property
    def scope_description(self):
        variant_count = self.applicable_variants.count()
        category_count = self.applicable_categories.count()
        dealer_count = self.applicable_dealers.count()

        if variant_count:
            description = f"Selected variants ({variant_count})"
        elif category_count:
            description = f"Categories ({category_count})"
        else:
            description = "All products"

        if dealer_count:
            description += f", dealers ({dealer_count})"
        return description

    def validity_status(self, now=None):
        from discounts.helpers import get_validity_status

        return get_validity_status(self, now or timezone.now())

    @property
    def has_usage_left(self):
        return self.usage_limit is None or self.usage_count < self.usage_limit

    @property
    def remaining_usage(self):
        if self.usage_limit is None:
            return None
        return max(self.usage_limit - self.usage_count, 0)


class AppliedDiscount(AbstractBaseModel):
    """
    Usage ledger: one row per discount redeemed on an order.
    Per-dealer counts enforce usage_limit_per_customer.
    """
    order = models.ForeignKey(
        'orders.Order', on_delete=models.CASCADE, related_name='applied_discounts'
    )
    discount = models.ForeignKey(
        Discount, on_delete=models.PROTECT, related_name='applications'
    )
    dealer = models.ForeignKey(
        'accounts.Dealer', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='applied_discounts'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='applied_discounts'
    )
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2
    )
    order_total = models.DecimalField(
        max_digits=12, decimal_places=2, default=0
    )
    metadata = models.JSONField(null=True, blank=True)

    objects = models.Manager()

    class Meta:
        unique_together = (('order', 'discount'),)
        ordering = ('-created_at',)
        verbose_name = 'Applied Discount'
        verbose_name_plural = 'Applied Discounts'

    def __str__(self):
        return f"{self.discount.name} on {self.order.order_number}: {self.discount_amount}"


class DiscountEvent(AbstractUUID, AbstractMonitor):
    """
    Outbox row for a discount domain fact. A dispatcher outside the pricing
    path delivers undispatched rows and stamps dispatched_at.
    """
    event_type = models.CharField(
        max_length=20, choices=DiscountEventType.CHOICES, db_index=True
    )
    discount = models.ForeignKey(
        Discount, on_delete=models.CASCADE, related_name='events'
    )
    payload = models.JSONField(default=dict)
    dispatched_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        verbose_name = 'Discount Event'
        verbose_name_plural = 'Discount Events'
        ordering = ('-created_at',)

    def __str__(self):
        return f"{self.event_type}: {self.discount_id}"

    def mark_dispatched(self):
        if self.dispatched_at is not None:
            return
        self.dispatched_at = timezone.now()
        self.save(update_fields=['dispatched_at', 'updated_at'])
