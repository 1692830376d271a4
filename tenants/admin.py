from django.contrib import admin
from .models import Account, Tenant


class TenantInline(admin.TabularInline):
    model = Tenant
    extra = 0
    fields = ("name", "unsubscribe_mode", "custom_unsubscribe_url")


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "created_at")
    search_fields = ("name",)
    inlines = [TenantInline]


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "name",
        "account",
        "unsubscribe_mode",
        "custom_unsubscribe_url",
        "created_at",
    )
    list_filter = ("unsubscribe_mode",)
    search_fields = ("name", "account__name")
