# delivery/sender.py
"""
Sender worker.

Every tick picks up the campaigns that are due (``scheduled`` or
``sending`` with no ``scheduled_at`` or one in the past) and, for each
campaign whose lease it can take, sends one chunk of recipients who have
no ledger event yet. Every recipient ends up with exactly one ``queued`` or
``failed`` event, which is also what keeps them out of later chunks.
"""

import logging
import os
import socket
import time
import uuid

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from audience.resolver import resolve_audience
from campaigns.models import Campaign
from campaigns.repository import latest_artifact
from campaigns.services import complete_campaign
from tracking.ledger import normalize_message_id, record_event
from .pacing import acquire_lease, release_lease, schedule_next_chunk
from .rendering import build_message
from .transport import get_transport

logger = logging.getLogger(__name__)


def default_owner_id():
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class SenderWorker:
    def __init__(self, transport=None, owner_id=None, sleep=time.sleep,
                 max_attempts=None, backoff_base_ms=None):
        self.transport = transport or get_transport()
        self.owner_id = owner_id or default_owner_id()
        self.sleep = sleep
        self.max_attempts = max_attempts or settings.SEND_MAX_ATTEMPTS
        self.backoff_base_ms = backoff_base_ms or settings.SEND_BACKOFF_BASE_MS

    def due_campaigns(self, now):
        return (
            Campaign.objects.select_related("tenant", "template")
            .filter(status__in=Campaign.DISPATCHABLE_STATUSES)
            .filter(Q(scheduled_at__isnull=True) | Q(scheduled_at__lte=now))
            .order_by("created_at")
        )

    def tick(self, now=None):
        """
        Run one pass over the due campaigns.

        Returns a dict of campaign id -> recipients processed this tick.
        A failing campaign is logged and does not stop the others.
        """
        now = now or timezone.now()
        campaigns = list(self.due_campaigns(now))
        if campaigns:
            logger.info(f"{len(campaigns)} due campaigns found")

        processed = {}
        for campaign in campaigns:
            try:
                processed[str(campaign.pk)] = self.process_campaign(campaign, now)
            except Exception as e:
                logger.error(f"Error processing campaign {campaign.pk}: {str(e)}")
                processed[str(campaign.pk)] = 0
        return processed

    def process_campaign(self, campaign, now):
        lease = acquire_lease(campaign, self.owner_id, now=now)
        if lease is None:
            return 0
        try:
            return self._send_chunk(campaign, lease, now)
        finally:
            release_lease(lease)

    def _send_chunk(self, campaign, lease, now):
        started = time.monotonic()

        # Paused or cancelled since the due query ran
        status = Campaign.objects.filter(pk=campaign.pk).values_list("status", flat=True).first()
        if status not in Campaign.DISPATCHABLE_STATUSES:
            return 0
        if status == "scheduled":
            Campaign.objects.filter(pk=campaign.pk, status="scheduled").update(
                status="sending", updated_at=timezone.now()
            )
            logger.info(f"Campaign {campaign.pk}: scheduled -> sending")

        artifact = latest_artifact(campaign.pk)
        if artifact is None and campaign.template is None:
            logger.warning(f"Campaign {campaign.pk} has neither artifact nor template, skipping")
            return 0

        audience = resolve_audience(campaign)
        batch = audience.remaining[: campaign.chunk_size]
        if not batch:
            logger.info(f"No recipients remaining for campaign {campaign.pk}, completing")
            complete_campaign(campaign.pk)
            return 0

        logger.info(
            f"Processing batch for campaign {campaign.pk}: {len(batch)} of "
            f"{audience.remaining_count} remaining ({audience.processed_count} processed)"
        )
        for recipient in batch:
            self.deliver(campaign, artifact, recipient)

        schedule_next_chunk(lease, campaign.delay_seconds_between_chunks, now=now)
        logger.info(
            f"Batch processed for campaign {campaign.pk} in "
            f"{(time.monotonic() - started) * 1000:.0f}ms"
        )
        return len(batch)

    def deliver(self, campaign, artifact, recipient):
        """Send to one recipient and record the outcome. Returns the event."""
        idempotency_key = f"{campaign.pk}:{recipient.contact_id}"
        try:
            message = build_message(campaign, artifact, recipient)
            result = self.send_with_retry(message)
        except Exception as e:
            logger.error(f"Send failed for campaign {campaign.pk} to {recipient.email}: {str(e)}")
            return record_event(
                campaign.tenant_id,
                "failed",
                campaign_id=campaign.pk,
                contact_id=recipient.contact_id,
                motor_block_id=campaign.motor_block_id,
                payload={"error": str(e), "idempotency_key": idempotency_key},
            )

        message_id = normalize_message_id(result.message_id)
        payload = result.as_payload()
        payload.update({"message_id": message_id, "idempotency_key": idempotency_key})
        return record_event(
            campaign.tenant_id,
            "queued",
            campaign_id=campaign.pk,
            contact_id=recipient.contact_id,
            message_id=message_id,
            motor_block_id=campaign.motor_block_id,
            payload=payload,
        )

    def send_with_retry(self, message):
        """
        Send through the transport, retrying any error with exponential
        backoff. The last error propagates.
        """
        attempt = 0
        while True:
            try:
                return self.transport.send(message)
            except Exception as e:
                attempt += 1
                if attempt >= self.max_attempts:
                    raise
                backoff_ms = self.backoff_base_ms * 2 ** (attempt - 1)
                logger.warning(
                    f"Send retry {attempt}/{self.max_attempts} to {message.to} "
                    f"in {backoff_ms}ms: {str(e)}"
                )
                self.sleep(backoff_ms / 1000)
