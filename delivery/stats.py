# delivery/stats.py
"""
Stats and reconciliation worker.

Each tick completes ``sending`` campaigns whose lists have run out of
active members, then pulls recent delivery outcomes from the provider's log
API into the event ledger. Log items are recorded at most once per
(campaign, message_id, type), so re-polling an unchanged log is a no-op.
"""

import logging
from datetime import timedelta

from django.db.models import Exists, OuterRef, Q
from django.utils import timezone

from audience.models import Contact, ListMembership
from campaigns.models import Campaign
from campaigns.services import complete_campaign
from tracking.ledger import (
    apply_terminal_status,
    as_uuid,
    classify_status,
    normalize_message_id,
    parse_occurred_at,
    record_event_if_absent,
)
from tracking.models import EmailEvent
from .exceptions import DeliveryLogError
from .logs_client import DeliveryLogClient
from .pacing import lease_is_live

logger = logging.getLogger(__name__)

RECENTLY_COMPLETED = timedelta(days=2)
CAMPAIGN_POLL_LIMIT = 50
LOG_PAGE_SIZE = 100


class StatsWorker:
    def __init__(self, client=None):
        self.client = client or DeliveryLogClient()

    def tick(self, now=None):
        now = now or timezone.now()
        completed = self.complete_exhausted_campaigns(now)
        inserted = self.poll_delivery_logs(now)
        if completed or inserted:
            logger.info(f"Stats tick: {completed} campaigns completed, {inserted} events recorded")
        return {"completed": completed, "inserted": inserted}

    def complete_exhausted_campaigns(self, now=None):
        """
        Complete every ``sending`` campaign none of whose lists has an active
        member. Campaigns a sender is mid-chunk on are left for a later tick.
        """
        now = now or timezone.now()
        active_member = ListMembership.objects.filter(
            contact_list__campaigns=OuterRef("pk"), status="active"
        )
        exhausted = (
            Campaign.objects.filter(status="sending")
            .annotate(has_active_members=Exists(active_member))
            .filter(has_active_members=False)
            .values_list("pk", flat=True)
        )
        completed = 0
        for campaign_id in exhausted:
            if lease_is_live(campaign_id, now):
                logger.debug(f"Campaign {campaign_id} is mid-chunk, not completing yet")
                continue
            if complete_campaign(campaign_id):
                completed += 1
        return completed

    def campaigns_to_poll(self, now):
        return (
            Campaign.objects.filter(
                Q(status__in=Campaign.DISPATCHABLE_STATUSES)
                | Q(status="completed", completed_at__gte=now - RECENTLY_COMPLETED)
            )
            .exclude(motor_block_id="")
            .order_by("-updated_at")[:CAMPAIGN_POLL_LIMIT]
        )

    def poll_delivery_logs(self, now=None):
        if not self.client.configured:
            return 0
        now = now or timezone.now()

        motor_blocks = []
        for campaign in self.campaigns_to_poll(now):
            if campaign.motor_block_id not in motor_blocks:
                motor_blocks.append(campaign.motor_block_id)

        inserted = 0
        for motor_block_id in motor_blocks:
            try:
                items = self.client.fetch_logs(motor_block_id, limit=LOG_PAGE_SIZE)
            except DeliveryLogError as e:
                logger.warning(f"Log poll failed for motor block {motor_block_id}: {str(e)}")
                continue
            for item in items:
                try:
                    if self.reconcile_log_item(item, motor_block_id):
                        inserted += 1
                except Exception as e:
                    logger.warning(f"Could not reconcile log item {item.get('messageId')}: {str(e)}")
        return inserted

    def _owning_campaign(self, metadata, message_id):
        """Return ``(campaign_id, tenant_id, contact_id)`` for a log item."""
        sent = (
            EmailEvent.objects.filter(message_id=message_id, campaign__isnull=False)
            .order_by("occurred_at")
            .values("campaign_id", "tenant_id", "contact_id")
            .first()
        )
        campaign_id = as_uuid(metadata.get("campaign_id"))
        if campaign_id:
            campaign = Campaign.objects.filter(pk=campaign_id).values("id", "tenant_id").first()
            if campaign:
                contact_id = sent["contact_id"] if sent and sent["campaign_id"] == campaign["id"] else None
                return campaign["id"], campaign["tenant_id"], contact_id
        if sent:
            return sent["campaign_id"], sent["tenant_id"], sent["contact_id"]
        return None, None, None

    def reconcile_log_item(self, item, motor_block_id=""):
        """Record one provider log item. Returns True when a row was inserted."""
        message_id = normalize_message_id(item.get("messageId") or item.get("message_id"))
        if not message_id:
            return False
        metadata = item.get("metadata") if isinstance(item.get("metadata"), dict) else {}

        campaign_id, tenant_id, contact_id = self._owning_campaign(metadata, message_id)
        if campaign_id is None:
            logger.debug(f"No campaign for message {message_id}")
            return False

        metadata_contact = as_uuid(metadata.get("contact_id"))
        if metadata_contact and Contact.objects.filter(pk=metadata_contact, tenant_id=tenant_id).exists():
            contact_id = metadata_contact

        event_type = classify_status(item.get("status"))
        _, created = record_event_if_absent(
            tenant_id,
            event_type,
            campaign_id=campaign_id,
            contact_id=contact_id,
            message_id=message_id,
            motor_block_id=motor_block_id,
            payload=item,
            occurred_at=parse_occurred_at(item.get("occurred_at")),
        )
        if created:
            apply_terminal_status(contact_id, event_type)
        return created
