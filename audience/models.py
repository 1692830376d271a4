# audience/models.py
from django.db import models
import uuid
import logging

from tenants.models import Account, Tenant

logger = logging.getLogger(__name__)


class Contact(models.Model):
    STATUS_CHOICES = [
        ("active", "Active"),
        ("unsubscribed", "Unsubscribed"),
        ("bounced", "Bounced"),
        ("complained", "Complained"),
        ("deleted", "Deleted"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        Tenant, on_delete=models.CASCADE, related_name="contacts"
    )
    email = models.EmailField()
    name = models.CharField(max_length=255, blank=True)
    identity_name = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="active")
    last_engagement_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        self.email = self.email.strip()
        try:
            super().save(*args, **kwargs)
            logger.debug(f"Contact saved successfully: {self.id}")
        except Exception as e:
            logger.error(f"Error saving Contact: {str(e)}")
            raise

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "email"], name="contact_unique_tenant_email"
            ),
        ]
        indexes = [
            models.Index(fields=["tenant", "status"], name="contact_tenant_status_idx"),
        ]

    def __str__(self):
        return self.email


class ContactList(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="lists")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    is_smart = models.BooleanField(default=False)
    filter_definition = models.JSONField(default=dict, blank=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name = "List"
        verbose_name_plural = "Lists"
        indexes = [
            models.Index(fields=["tenant", "deleted_at"], name="list_tenant_deleted_idx"),
        ]

    def __str__(self):
        return self.name


class ListMembership(models.Model):
    """
    Contact-in-list row. The auto-increment id doubles as insertion order,
    which the audience resolver relies on for its first-row-wins dedup.
    """

    STATUS_CHOICES = [
        ("active", "Active"),
        ("removed", "Removed"),
    ]

    contact_list = models.ForeignKey(
        ContactList, on_delete=models.CASCADE, related_name="memberships"
    )
    contact = models.ForeignKey(
        Contact, on_delete=models.CASCADE, related_name="memberships"
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="active")
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["contact_list", "contact"], name="membership_unique_list_contact"
            ),
        ]
        indexes = [
            models.Index(fields=["contact_list", "status"], name="membership_list_status_idx"),
        ]

    def __str__(self):
        return f"{self.contact_id} in {self.contact_list_id} ({self.status})"


class Suppression(models.Model):
    REASON_CHOICES = [
        ("unsubscribe", "Unsubscribe"),
        ("bounce", "Bounce"),
        ("complaint", "Complaint"),
        ("manual", "Manual"),
    ]
    SOURCE_CHOICES = [
        ("link", "Unsubscribe link"),
        ("manual", "Manual"),
        ("webhook", "Provider webhook"),
    ]

    account = models.ForeignKey(
        Account, on_delete=models.CASCADE, related_name="suppressions"
    )
    email = models.EmailField()
    reason = models.CharField(max_length=20, choices=REASON_CHOICES, default="unsubscribe")
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES, default="manual")
    landing_variant = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        # Matching is case-insensitive everywhere, so store it lowered
        self.email = self.email.strip().lower()
        super().save(*args, **kwargs)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["account", "email"], name="suppression_unique_account_email"
            ),
        ]

    def __str__(self):
        return f"{self.email} ({self.reason})"
