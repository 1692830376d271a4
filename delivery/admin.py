from django.contrib import admin
from .models import SendLease


@admin.register(SendLease)
class SendLeaseAdmin(admin.ModelAdmin):
    list_display = ("campaign", "owner", "expires_at", "next_allowed_at", "chunks_sent", "updated_at")
    search_fields = ("campaign__name", "owner")
    readonly_fields = ("chunks_sent", "updated_at")
