from django.contrib import admin

from discounts.cache import invalidate_discount_cache
from discounts.models import Discount, AppliedDiscount, DiscountEvent


@admin.register(Discount)
class DiscountAdmin(admin.ModelAdmin):
    """Admin configuration for Discount model."""
    list_display = [
        'name', 'discount_type', 'discount_value', 'discount_code',
        'is_active', 'status', 'auto_apply', 'stackable', 'priority',
        'usage_count', 'usage_limit', 'start_date', 'end_date'
    ]
    list_filter = ['discount_type', 'is_active', 'status', 'auto_apply', 'stackable']
    search_fields = ['name', 'discount_code']
    ordering = ['-start_date']
    readonly_fields = ['id', 'usage_count', 'created_at', 'updated_at']
    filter_horizontal = ['applicable_variants', 'applicable_categories', 'applicable_dealers']

    def save_related(self, request, form, formsets, change):
        super().save_related(request, form, formsets, change)
        invalidate_discount_cache()

    # Discounts are referenced by applied discounts, so they are only ever soft deleted.
    def delete_model(self, request, obj):
        obj.soft_delete()
        invalidate_discount_cache()

    def delete_queryset(self, request, queryset):
        for discount in queryset:
            discount.soft_delete()
        invalidate_discount_cache()


@admin.register(AppliedDiscount)
class AppliedDiscountAdmin(admin.ModelAdmin):
    """Admin configuration for AppliedDiscount model."""
    list_display = [
        'order', 'discount', 'dealer', 'discount_amount', 'order_total', 'created_at'
    ]
    list_filter = ['created_at']
    search_fields = ['order__order_number', 'discount__name', 'dealer__name']
    ordering = ['-created_at']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(DiscountEvent)
class DiscountEventAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'discount', 'created_at', 'dispatched_at']
    list_filter = ['event_type']
    search_fields = ['discount__name']
    readonly_fields = ['id', 'event_type', 'discount', 'payload', 'created_at', 'updated_at']
