# campaigns/models.py
from django.conf import settings
from django.db import models
import uuid
import logging

from tenants.models import Tenant
from audience.models import ContactList

logger = logging.getLogger(__name__)


def default_chunk_size():
    return settings.DEFAULT_CHUNK_SIZE


def default_chunk_delay():
    return settings.DEFAULT_CHUNK_DELAY_SECONDS


class Template(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        Tenant, on_delete=models.CASCADE, related_name="templates"
    )
    name = models.CharField(max_length=255)
    subject = models.CharField(max_length=500)
    html = models.TextField(blank=True)
    text = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.name


class Campaign(models.Model):
    STATUS_CHOICES = [
        ("draft", "Draft"),
        ("scheduled", "Scheduled"),
        ("sending", "Sending"),
        ("paused", "Paused"),
        ("completed", "Completed"),
        ("cancelled", "Cancelled"),
    ]
    # Statuses the sender worker picks up
    DISPATCHABLE_STATUSES = ("scheduled", "sending")
    TERMINAL_STATUSES = ("completed", "cancelled")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        Tenant, on_delete=models.CASCADE, related_name="campaigns"
    )
    name = models.CharField(max_length=255)
    template = models.ForeignKey(
        Template,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="campaigns",
    )
    motor_block_id = models.CharField(max_length=100, blank=True)
    lists = models.ManyToManyField(ContactList, related_name="campaigns", blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="draft")
    scheduled_at = models.DateTimeField(null=True, blank=True)
    timezone = models.CharField(max_length=64, default="UTC")
    chunk_size = models.PositiveIntegerField(default=default_chunk_size)
    delay_seconds_between_chunks = models.PositiveIntegerField(default=default_chunk_delay)
    google_analytics = models.JSONField(default=dict, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        try:
            super().save(*args, **kwargs)
            logger.info(f"Campaign saved successfully: {self.id} ({self.status})")
        except Exception as e:
            logger.error(f"Error saving Campaign: {str(e)}")
            raise

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "scheduled_at"], name="campaign_status_sched_idx"),
            models.Index(fields=["tenant", "status"], name="campaign_tenant_status_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.status})"


class CampaignArtifact(models.Model):
    """
    Compiled rendering of a campaign's template at one version.

    Rows are append-only. The compile hooks that backfill text or merge
    into ``meta`` go through ``campaigns.repository`` with queryset updates
    scoped to the exact (campaign, version), never through ``save()``.
    """

    campaign = models.ForeignKey(
        Campaign, on_delete=models.CASCADE, related_name="artifacts"
    )
    version = models.PositiveIntegerField()
    subject = models.CharField(max_length=500)
    html_compiled = models.TextField(blank=True)
    text_compiled = models.TextField(blank=True)
    meta = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError(
                f"Campaign artifact {self.campaign_id} v{self.version} is immutable"
            )
        super().save(*args, **kwargs)

    class Meta:
        ordering = ["-version"]
        constraints = [
            models.UniqueConstraint(
                fields=["campaign", "version"], name="artifact_unique_campaign_version"
            ),
        ]

    def __str__(self):
        return f"{self.campaign_id} v{self.version}"


class AudienceSnapshot(models.Model):
    campaign = models.ForeignKey(
        Campaign, on_delete=models.CASCADE, related_name="audience_snapshots"
    )
    version = models.PositiveIntegerField()
    total_recipients = models.PositiveIntegerField(default=0)
    included_lists = models.JSONField(default=list, blank=True)
    filters = models.JSONField(default=dict, blank=True)
    dedup_policy = models.CharField(max_length=50, default="email_lower")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-version"]
        constraints = [
            models.UniqueConstraint(
                fields=["campaign", "version"], name="snapshot_unique_campaign_version"
            ),
        ]

    def __str__(self):
        return f"{self.campaign_id} audience v{self.version}"
