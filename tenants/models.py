# tenants/models.py
from django.db import models
from urllib.parse import urlparse
import uuid
import logging

logger = logging.getLogger(__name__)


class Account(models.Model):
    """
    A business account. Suppressions are scoped to the account, so every
    tenant under the same account shares one opt-out list.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Tenant(models.Model):
    UNSUBSCRIBE_MODE_CHOICES = [
        ("customer", "Customer landing page"),
        ("platform", "Hosted confirmation page"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account = models.ForeignKey(
        Account, on_delete=models.CASCADE, related_name="tenants"
    )
    name = models.CharField(max_length=255)
    unsubscribe_mode = models.CharField(
        max_length=20, choices=UNSUBSCRIBE_MODE_CHOICES, default="platform"
    )
    custom_unsubscribe_url = models.URLField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        try:
            super().save(*args, **kwargs)
            logger.info(f"Tenant saved successfully: {self.id}")
        except Exception as e:
            logger.error(f"Error saving Tenant: {str(e)}")
            raise

    def customer_landing_url(self):
        """Return the tenant's HTTPS landing URL when customer mode applies."""
        if self.unsubscribe_mode != "customer" or not self.custom_unsubscribe_url:
            return None
        try:
            parsed = urlparse(self.custom_unsubscribe_url)
        except ValueError:
            return None
        if parsed.scheme != "https" or not parsed.netloc:
            return None
        return self.custom_unsubscribe_url

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["account"], name="tenant_account_idx"),
        ]

    def __str__(self):
        return self.name
