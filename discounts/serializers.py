from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone
from rest_framework import serializers

from discounts import DiscountEventType
from discounts.events import record_discount_event
from discounts.models import Discount, AppliedDiscount
from discounts.validators import validate_discount_data

# Changes to these fields are announced to dealers.
NOTIFIED_FIELDS = ('is_active', 'start_date', 'end_date')

VALIDATED_FIELDS = (
    'discount_type', 'discount_value', 'start_date', 'end_date',
    'minimum_order_amount', 'maximum_discount_amount',
    'usage_limit', 'usage_limit_per_customer', 'priority',
    'auto_apply', 'discount_code',
)


class DiscountSerializer(serializers.ModelSerializer):
    """
    Serializer for Discount model.

    Optional fields (if not provided, the condition doesn't apply):
    - minimum_order_amount: order subtotal the dealer must reach
    - maximum_discount_amount: cap on the discount per line
    - usage_limit / usage_limit_per_customer: redemption caps
    - applicable_variants / applicable_categories: scope, at most one of them
    - applicable_dealers: dealer restriction, empty means every dealer
    """
    scope = serializers.CharField(read_only=True)
    scope_description = serializers.CharField(read_only=True)
    validity_status = serializers.SerializerMethodField()

    class Meta:
        model = Discount
        fields = [
            'id', 'name', 'description',
            'discount_type', 'discount_value',
            'start_date', 'end_date', 'is_active',
            'minimum_order_amount', 'maximum_discount_amount',
            'usage_limit', 'usage_count', 'usage_limit_per_customer',
            'discount_code', 'auto_apply', 'priority', 'stackable',
            'applicable_variants', 'applicable_categories', 'applicable_dealers',
            'scope', 'scope_description', 'validity_status', 'status',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'usage_count', 'status', 'created_at', 'updated_at']

    def get_validity_status(self, obj):
        return obj.validity_status(timezone.now())

    def validate(self, data):
        """Validate the discount as it will be once saved."""
        merged = {}
        for field in VALIDATED_FIELDS:
            if field in data:
                merged[field] = data[field]
            elif self.instance is not None:
                merged[field] = getattr(self.instance, field)
            else:
                merged[field] = None

        if 'auto_apply' not in data and self.instance is None:
            merged['auto_apply'] = True
        if merged['priority'] is None and self.instance is None:
            merged['priority'] = 0

        for relation in ('applicable_variants', 'applicable_categories'):
            if relation in data:
                merged[relation] = data[relation]
            elif self.instance is not None:
                merged[relation] = list(getattr(self.instance, relation).all())

        try:
            validate_discount_data(merged)
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.message_dict)

        return data

    def create(self, validated_data):
        with transaction.atomic():
            discount = super().create(validated_data)
            record_discount_event(DiscountEventType.CREATED, discount)
        return discount

    def update(self, instance, validated_data):
        before = {field: getattr(instance, field) for field in NOTIFIED_FIELDS}
        with transaction.atomic():
            discount = super().update(instance, validated_data)
            changed = [field for field in NOTIFIED_FIELDS if getattr(discount, field) != before[field]]
            if changed:
                record_discount_event(DiscountEventType.UPDATED, discount, changed_fields=changed)
        return discount


class DiscountListSerializer(serializers.ModelSerializer):
    """Serializer for listing discounts with the fields admin tables show."""
    validity_status = serializers.SerializerMethodField()

    class Meta:
        model = Discount
        fields = [
            'id', 'name', 'discount_type', 'discount_value',
            'start_date', 'end_date', 'is_active',
            'usage_limit', 'usage_count', 'discount_code',
            'auto_apply', 'priority', 'stackable',
            'validity_status', 'status',
        ]

    def get_validity_status(self, obj):
        return obj.validity_status(timezone.now())


class DiscountCalculationSerializer(serializers.Serializer):
    """Input for a single-line discounted price preview."""
    variant_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False
    )
    dealer_id = serializers.UUIDField(required=False)
    discount_code = serializers.CharField(max_length=64, required=False, allow_blank=True)

    def validate_unit_price(self, value):
        if value is not None and value <= 0:
            raise serializers.ValidationError('Unit price must be greater than zero.')
        return value


class AppliedDiscountSerializer(serializers.ModelSerializer):
    """Serializer for viewing applied discounts."""
    discount_name = serializers.CharField(source='discount.name', read_only=True)
    dealer_name = serializers.CharField(source='dealer.name', read_only=True, default=None)
    order_number = serializers.IntegerField(source='order.order_number', read_only=True)

    class Meta:
        model = AppliedDiscount
        fields = [
            'id', 'order', 'order_number', 'discount', 'discount_name',
            'dealer', 'dealer_name', 'discount_amount', 'order_total',
            'metadata', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']
