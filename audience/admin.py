from django.contrib import admin
from .models import Contact, ContactList, ListMembership, Suppression


class ListMembershipInline(admin.TabularInline):
    model = ListMembership
    extra = 0
    raw_id_fields = ("contact",)
    fields = ("contact", "status", "added_at")
    readonly_fields = ("added_at",)


@admin.register(Contact)
class ContactAdmin(admin.ModelAdmin):
    list_display = ("id", "email", "name", "tenant", "status", "last_engagement_at", "created_at")
    list_filter = ("status", "tenant")
    search_fields = ("email", "name")


@admin.register(ContactList)
class ContactListAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "tenant", "is_smart", "deleted_at", "created_at")
    list_filter = ("is_smart", "tenant")
    search_fields = ("name",)
    inlines = [ListMembershipInline]


@admin.register(Suppression)
class SuppressionAdmin(admin.ModelAdmin):
    list_display = ("email", "account", "reason", "source", "landing_variant", "created_at")
    list_filter = ("reason", "source")
    search_fields = ("email",)
