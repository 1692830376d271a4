# tracking/models.py
from django.db import models
from django.db.models import Q
from django.utils import timezone

from tenants.models import Tenant
from audience.models import Contact
from campaigns.models import Campaign


class EmailEvent(models.Model):
    """
    One row of the append-only event ledger.

    Any row for a (campaign, contact) pair marks that contact as processed
    for the campaign; provider-confirmed rows are deduplicated on
    (campaign, message_id, type).
    """

    TYPE_CHOICES = [
        ("queued", "Queued"),
        ("sent", "Sent"),
        ("delivered", "Delivered"),
        ("bounced", "Bounced"),
        ("complained", "Complained"),
        ("failed", "Failed"),
        ("opened", "Opened"),
        ("clicked", "Clicked"),
        ("resubscribed", "Resubscribed"),
    ]

    tenant = models.ForeignKey(
        Tenant, on_delete=models.CASCADE, related_name="email_events"
    )
    campaign = models.ForeignKey(
        Campaign,
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name="events",
    )
    contact = models.ForeignKey(
        Contact,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="events",
    )
    message_id = models.CharField(max_length=255, null=True, blank=True)
    motor_block_id = models.CharField(max_length=100, blank=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    payload = models.JSONField(default=dict, blank=True)
    occurred_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-occurred_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["campaign", "message_id", "type"],
                condition=Q(message_id__isnull=False),
                name="event_unique_campaign_message_type",
            ),
        ]
        indexes = [
            models.Index(fields=["campaign", "contact"], name="event_campaign_contact_idx"),
            models.Index(fields=["message_id"], name="event_message_id_idx"),
            models.Index(fields=["campaign", "type"], name="event_campaign_type_idx"),
            models.Index(fields=["occurred_at"], name="event_occurred_idx"),
        ]

    def __str__(self):
        return f"{self.type} {self.message_id or '-'}"
