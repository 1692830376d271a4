"""
Per-campaign send lease.

A sender process must hold a campaign's lease to send a chunk for it, and
may only take it once ``next_allowed_at`` has passed. Leases expire on
their own, so a crashed worker blocks a campaign for at most
``SEND_LEASE_TTL_SECONDS``.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .models import SendLease

logger = logging.getLogger(__name__)


def acquire_lease(campaign, owner, now=None, ttl_seconds=None):
    """
    Take the campaign's lease for ``owner``.

    Returns the lease, or None when another live owner holds it or the
    pacing delay since the last chunk has not elapsed.
    """
    now = now or timezone.now()
    ttl = ttl_seconds or settings.SEND_LEASE_TTL_SECONDS
    with transaction.atomic():
        SendLease.objects.get_or_create(campaign=campaign)
        lease = SendLease.objects.select_for_update().get(campaign=campaign)
        if lease.is_held(now) and lease.owner != owner:
            logger.debug(f"Campaign {campaign.pk} lease held by {lease.owner}")
            return None
        if lease.next_allowed_at and lease.next_allowed_at > now:
            return None
        lease.owner = owner
        lease.expires_at = now + timedelta(seconds=ttl)
        lease.save(update_fields=["owner", "expires_at", "updated_at"])
    return lease


def schedule_next_chunk(lease, delay_seconds, now=None):
    now = now or timezone.now()
    next_allowed = now + timedelta(seconds=delay_seconds)
    SendLease.objects.filter(pk=lease.pk, owner=lease.owner).update(
        next_allowed_at=next_allowed,
        chunks_sent=F("chunks_sent") + 1,
        updated_at=timezone.now(),
    )
    lease.next_allowed_at = next_allowed
    return next_allowed


def release_lease(lease):
    SendLease.objects.filter(pk=lease.pk, owner=lease.owner).update(
        owner="", expires_at=None, updated_at=timezone.now()
    )


def lease_is_live(campaign_id, now=None):
    """True while some sender is mid-chunk for the campaign."""
    now = now or timezone.now()
    return SendLease.objects.filter(
        campaign_id=campaign_id, expires_at__gt=now
    ).exclude(owner="").exists()
