from django.contrib import admin

from products.models import Category, Product, ProductVariant, VariantPrice


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'parent', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name']


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0
    fields = ['name', 'sku', 'price', 'is_active']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'category', 'is_active']
    list_filter = ['category', 'is_active']
    search_fields = ['name', 'code']
    inlines = [ProductVariantInline]


@admin.register(VariantPrice)
class VariantPriceAdmin(admin.ModelAdmin):
    list_display = ['variant', 'dealer', 'amount', 'currency', 'valid_from', 'valid_until']
    list_filter = ['currency', 'dealer']
    search_fields = ['variant__name', 'variant__sku', 'dealer__name', 'dealer__code']
