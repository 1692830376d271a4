from django.contrib import admin
from .models import AudienceSnapshot, Campaign, CampaignArtifact, Template


class CampaignArtifactInline(admin.TabularInline):
    model = CampaignArtifact
    extra = 0
    fields = ("version", "subject", "created_at")
    readonly_fields = fields
    can_delete = False
    show_change_link = True


@admin.register(Template)
class TemplateAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "tenant", "subject", "updated_at")
    search_fields = ("name", "subject")
    list_filter = ("tenant",)


@admin.register(Campaign)
class CampaignAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "name",
        "tenant",
        "status",
        "scheduled_at",
        "chunk_size",
        "delay_seconds_between_chunks",
        "completed_at",
    )
    list_filter = ("status", "tenant")
    search_fields = ("name", "motor_block_id")
    filter_horizontal = ("lists",)
    readonly_fields = ("completed_at", "created_at", "updated_at")
    inlines = [CampaignArtifactInline]


@admin.register(CampaignArtifact)
class CampaignArtifactAdmin(admin.ModelAdmin):
    list_display = ("campaign", "version", "subject", "created_at")
    search_fields = ("campaign__name", "subject")
    readonly_fields = ("campaign", "version", "subject", "html_compiled", "text_compiled", "meta", "created_at")

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(AudienceSnapshot)
class AudienceSnapshotAdmin(admin.ModelAdmin):
    list_display = ("campaign", "version", "total_recipients", "dedup_policy", "created_at")
    search_fields = ("campaign__name",)
