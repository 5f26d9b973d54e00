from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from accounts.models import User, Dealer


@admin.register(Dealer)
class DealerAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'email', 'phone', 'country', 'is_active')
    search_fields = ('name', 'code', 'email')
    list_filter = ('is_active', 'country')
    ordering = ('name',)
    readonly_fields = ('id', 'created_at', 'updated_at')


class UserAdmin(BaseUserAdmin):
    list_display = ('email', 'first_name', 'last_name', 'dealer', 'is_staff', 'is_superuser', 'is_active')
    search_fields = ('email', 'first_name', 'last_name', 'dealer__name')
    ordering = ('-created_at',)
    list_filter = ('is_staff', 'is_superuser', 'is_active')

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Personal Info', {'fields': ('first_name', 'last_name')}),
        ('Dealer', {'fields': ('dealer',)}),
        ('Permissions', {'fields': ('is_active', 'is_staff', 'is_superuser')}),
        ('Groups', {'fields': ('groups', 'user_permissions')}),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'first_name', 'last_name', 'dealer', 'password1', 'password2'),
        }),
    )


admin.site.register(User, UserAdmin)
