from django.db import models
from django.db.models import Q
from django.utils import timezone

from core import Currency
from core.models import AbstractBaseModel
from core.validators import validate_positive_amount


class Category(AbstractBaseModel):
    name = models.CharField(max_length=250)
    description = models.TextField(blank=True)
    parent = models.ForeignKey(
        "self", null=True, blank=True, related_name="children", on_delete=models.CASCADE
    )

    objects = models.Manager()

    class Meta:
        verbose_name = "Category"
        verbose_name_plural = "Categories"
        ordering = ('name',)

    def __str__(self) -> str:
        return self.name

    def lineage_ids(self):
        """
        Ids of this category and all of its ancestors, nearest first.
        A discount scoped to a parent category covers every sub-category.
        """
        ids = []
        category = self
        while category is not None and category.id not in ids:
            ids.append(category.id)
            category = category.parent
        return ids


class Product(AbstractBaseModel):
    name = models.CharField(max_length=250)
    description = models.TextField(blank=True)
    code = models.CharField(max_length=64, blank=True, db_index=True)
    category = models.ForeignKey(
        Category,
        related_name="products",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )

    class Meta:
        verbose_name = "Product"
        verbose_name_plural = "Products"

    def __str__(self):
        return self.name


class ProductVariant(AbstractBaseModel):
    """
    A sellable SKU of a product (a given size, diameter, pack).
    """
    name = models.CharField(max_length=255, blank=True)
    sku = models.CharField(max_length=128, blank=True, db_index=True)
    product = models.ForeignKey(
        Product, related_name="variants", on_delete=models.CASCADE
    )
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="List unit price, used when the dealer has no price of its own",
        validators=[validate_positive_amount]
    )

    class Meta:
        verbose_name = "Product Variant"
        verbose_name_plural = "Product Variants"

    def __str__(self):
        return f"{self.product.name} - {self.name}" if self.name else self.product.name

    @property
    def category_ids(self):
        category = self.product.category
        return category.lineage_ids() if category else []

    def price_for(self, dealer=None, now=None):
        """Unit price for a dealer: its active price-list entry, else the list price."""
        if dealer is not None:
            now = now or timezone.now()
            dealer_price = VariantPrice.objects.filter(
                variant=self,
                dealer=dealer,
                valid_from__lte=now,
            ).filter(
                Q(valid_until__isnull=True) | Q(valid_until__gte=now)
            ).order_by('-valid_from').first()
            if dealer_price is not None:
                return dealer_price.amount
        return self.price


class VariantPrice(AbstractBaseModel):
    """Dealer-specific unit price for a variant, valid within a time window."""
    variant = models.ForeignKey(
        ProductVariant, related_name="dealer_prices", on_delete=models.CASCADE
    )
    dealer = models.ForeignKey(
        'accounts.Dealer', related_name="variant_prices", on_delete=models.CASCADE
    )
    amount = models.DecimalField(
        max_digits=12, decimal_places=2,
        validators=[validate_positive_amount]
    )
    currency = models.CharField(
        max_length=8, choices=Currency.CHOICES, default=Currency.TRY
    )
    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Variant Price"
        verbose_name_plural = "Variant Prices"
        ordering = ('variant', 'dealer', '-valid_from')

    def __str__(self):
        return f"{self.variant} / {self.dealer.code}: {self.amount}"
