"""
DRF serializers for templates, campaigns and their compiled artifacts.

Foreign keys are checked against the tenant passed in the serializer
context, so a tenant can never attach another tenant's template or list.
"""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rest_framework import serializers

from audience.models import ContactList
from .models import AudienceSnapshot, Campaign, CampaignArtifact, Template


def validate_timezone_name(value):
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise serializers.ValidationError(f"Unknown timezone: {value}")
    return value


class TemplateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Template
        fields = ["id", "name", "subject", "html", "text", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate(self, attrs):
        html = attrs.get("html", getattr(self.instance, "html", ""))
        text = attrs.get("text", getattr(self.instance, "text", ""))
        if not html and not text:
            raise serializers.ValidationError("Template needs html or text content.")
        return attrs


class CampaignSerializer(serializers.ModelSerializer):
    """
    Campaign with its pacing settings.

    ``status`` only changes through the lifecycle actions, never by a
    plain update.
    """

    template = serializers.PrimaryKeyRelatedField(
        queryset=Template.objects.all(), required=False, allow_null=True
    )
    lists = serializers.PrimaryKeyRelatedField(
        queryset=ContactList.objects.filter(deleted_at__isnull=True), many=True, required=False
    )
    timezone = serializers.CharField(required=False, validators=[validate_timezone_name])

    class Meta:
        model = Campaign
        fields = [
            "id",
            "name",
            "template",
            "motor_block_id",
            "lists",
            "status",
            "scheduled_at",
            "timezone",
            "chunk_size",
            "delay_seconds_between_chunks",
            "google_analytics",
            "completed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "status", "completed_at", "created_at", "updated_at"]
        extra_kwargs = {
            "chunk_size": {"min_value": 1, "max_value": 10000},
            "delay_seconds_between_chunks": {"max_value": 86400},
        }

    def _tenant(self):
        return self.context["tenant"]

    def validate_template(self, value):
        if value is not None and value.tenant_id != self._tenant().id:
            raise serializers.ValidationError("Template not found.")
        return value

    def validate_lists(self, value):
        foreign = [str(item.id) for item in value if item.tenant_id != self._tenant().id]
        if foreign:
            raise serializers.ValidationError(f"Lists not found: {', '.join(foreign)}")
        return value

    def validate_google_analytics(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Must be an object.")
        policy = value.get("policy")
        if policy is not None and policy not in ("append", "override"):
            raise serializers.ValidationError("policy must be 'append' or 'override'.")
        return value


class ScheduleSerializer(serializers.Serializer):
    scheduled_at = serializers.DateTimeField(required=False, allow_null=True)
    timezone = serializers.CharField(required=False, validators=[validate_timezone_name])


class CampaignSettingsSerializer(serializers.Serializer):
    chunk_size = serializers.IntegerField(required=False, min_value=1, max_value=10000)
    delay_seconds_between_chunks = serializers.IntegerField(
        required=False, min_value=0, max_value=86400
    )
    timezone = serializers.CharField(required=False, validators=[validate_timezone_name])
    scheduled_at = serializers.DateTimeField(required=False, allow_null=True)
    clear_scheduled = serializers.BooleanField(required=False, default=False)


class CampaignArtifactSerializer(serializers.ModelSerializer):
    class Meta:
        model = CampaignArtifact
        fields = ["id", "campaign", "version", "subject", "html_compiled", "text_compiled", "meta", "created_at"]
        read_only_fields = fields


class AudienceSnapshotSerializer(serializers.ModelSerializer):
    class Meta:
        model = AudienceSnapshot
        fields = ["version", "total_recipients", "included_lists", "filters", "dedup_policy", "created_at"]
        read_only_fields = fields
