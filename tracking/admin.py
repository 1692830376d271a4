from django.contrib import admin
from .models import EmailEvent


@admin.register(EmailEvent)
class EmailEventAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "type",
        "campaign",
        "contact",
        "message_id",
        "occurred_at",
    )
    list_filter = ("type",)
    search_fields = ("message_id", "contact__email")
    raw_id_fields = ("campaign", "contact")
    date_hierarchy = "occurred_at"

    def has_change_permission(self, request, obj=None):
        return False
