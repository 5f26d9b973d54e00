from rest_framework import serializers

from core import Currency
from discounts.models import AppliedDiscount
from orders.models import Order, OrderItem
from products.models import ProductVariant


class OrderItemInputSerializer(serializers.Serializer):
    """Input serializer for order items during preview and checkout."""
    product_variant_id = serializers.UUIDField(required=True)
    quantity = serializers.IntegerField(required=True, min_value=1)


class OrderPricingInputSerializer(serializers.Serializer):
    """
    Cart sent for preview or checkout. Administrators act on behalf of a
    dealer through dealer_id; dealer users always price for their own dealer.
    """
    items = OrderItemInputSerializer(many=True, required=True)
    discount_code = serializers.CharField(max_length=64, required=False, allow_blank=True, default='')
    dealer_id = serializers.UUIDField(required=False, allow_null=True, default=None)

    def validate_items(self, items):
        """Validate that items exist and variants are active."""
        if not items:
            raise serializers.ValidationError("Order must contain at least one item")

        variant_ids = {item['product_variant_id'] for item in items}
        variants = ProductVariant.objects.filter(
            id__in=variant_ids,
            is_active=True,
            product__is_active=True
        )

        if variants.count() != len(variant_ids):
            raise serializers.ValidationError("One or more product variants are invalid or inactive")

        return items


class OrderCheckoutSerializer(OrderPricingInputSerializer):
    currency = serializers.ChoiceField(choices=Currency.CHOICES, required=False, default=Currency.TRY)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class OrderItemSerializer(serializers.ModelSerializer):
    """Serializer for displaying order items."""
    product_name = serializers.CharField(source='product_variant.product.name', read_only=True)
    variant_name = serializers.CharField(source='product_variant.name', read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            'id', 'product_variant', 'product_name', 'variant_name',
            'quantity', 'unit_rate', 'discount_amount', 'amount', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']


class OrderAppliedDiscountSerializer(serializers.ModelSerializer):
    discount_name = serializers.CharField(source='discount.name', read_only=True)

    class Meta:
        model = AppliedDiscount
        fields = ['discount', 'discount_name', 'discount_amount']


class OrderDetailSerializer(serializers.ModelSerializer):
    """Serializer for displaying order details with discount breakdown."""
    order_items = OrderItemSerializer(many=True, read_only=True)
    applied_discounts = OrderAppliedDiscountSerializer(many=True, read_only=True)
    dealer_name = serializers.CharField(source='dealer.name', read_only=True)
    user_email = serializers.EmailField(source='user.email', read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'dealer', 'dealer_name', 'user', 'user_email',
            'order_status', 'currency', 'discount_code',
            'subtotal', 'discount_amount', 'total_amount',
            'applied_discounts', 'pricing_warnings', 'notes',
            'order_items', 'created_at', 'updated_at'
        ]
        read_only_fields = fields
