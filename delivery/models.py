# delivery/models.py
from django.db import models

from campaigns.models import Campaign


class SendLease(models.Model):
    """
    Per-campaign pacing gate shared by every sender process.

    ``owner`` and ``expires_at`` say which worker is currently sending a
    chunk; ``next_allowed_at`` is the earliest moment the next chunk may go.
    """

    campaign = models.OneToOneField(
        Campaign, on_delete=models.CASCADE, related_name="send_lease"
    )
    owner = models.CharField(max_length=100, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    next_allowed_at = models.DateTimeField(null=True, blank=True)
    chunks_sent = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    def is_held(self, now):
        return bool(self.owner) and self.expires_at is not None and self.expires_at > now

    def __str__(self):
        return f"lease {self.campaign_id} owner={self.owner or '-'}"
