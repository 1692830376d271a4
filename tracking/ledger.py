"""
Writes to the email event ledger.

Provider-confirmed events (polled logs, webhooks) go through
``record_event_if_absent`` so replays of the same (campaign, message_id,
type) never produce a second row.
"""

import logging
import uuid

from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from audience.models import Contact
from .models import EmailEvent

logger = logging.getLogger(__name__)

EVENT_TYPES = {choice for choice, _ in EmailEvent.TYPE_CHOICES}

# Substring -> ledger type, checked in order
STATUS_KEYWORDS = [
    ("deliver", "delivered"),
    ("bounce", "bounced"),
    ("complain", "complained"),
    ("fail", "failed"),
]

CONTACT_STATUS_FOR_EVENT = {
    "bounced": "bounced",
    "complained": "complained",
}


def classify_status(raw_status):
    """Map a provider status string onto the ledger vocabulary; default ``sent``."""
    lowered = str(raw_status or "").lower()
    for keyword, event_type in STATUS_KEYWORDS:
        if keyword in lowered:
            return event_type
    return "sent"


def normalize_event_type(raw_type):
    value = str(raw_type or "").strip().lower()
    if value in EVENT_TYPES:
        return value
    return classify_status(value)


def normalize_message_id(message_id):
    """Strip whitespace and ``<...>`` wrapping; empty becomes None."""
    if message_id is None:
        return None
    value = str(message_id).strip()
    if value.startswith("<") and value.endswith(">"):
        value = value[1:-1].strip()
    return value or None


def record_event(
    tenant_id,
    event_type,
    campaign_id=None,
    contact_id=None,
    message_id=None,
    motor_block_id="",
    payload=None,
    occurred_at=None,
):
    return EmailEvent.objects.create(
        tenant_id=tenant_id,
        campaign_id=campaign_id,
        contact_id=contact_id,
        message_id=normalize_message_id(message_id),
        motor_block_id=motor_block_id or "",
        type=event_type,
        payload=payload or {},
        occurred_at=occurred_at or timezone.now(),
    )


def record_event_if_absent(
    tenant_id,
    event_type,
    campaign_id=None,
    contact_id=None,
    message_id=None,
    motor_block_id="",
    payload=None,
    occurred_at=None,
):
    """
    Insert the event unless one with the same (campaign, message_id, type)
    exists. Returns ``(event, created)``.
    """
    message_id = normalize_message_id(message_id)
    lookup = None
    if campaign_id and message_id:
        lookup = {"campaign_id": campaign_id, "message_id": message_id, "type": event_type}
        existing = EmailEvent.objects.filter(**lookup).first()
        if existing is not None:
            return existing, False

    try:
        with transaction.atomic():
            event = record_event(
                tenant_id,
                event_type,
                campaign_id=campaign_id,
                contact_id=contact_id,
                message_id=message_id,
                motor_block_id=motor_block_id,
                payload=payload,
                occurred_at=occurred_at,
            )
    except IntegrityError:
        if lookup is None:
            raise
        # Lost the race to a concurrent writer
        logger.debug(f"Event already recorded: {lookup}")
        return EmailEvent.objects.get(**lookup), False
    return event, True


def apply_terminal_status(contact_id, event_type):
    """Flip the contact to bounced/complained so resolution skips it."""
    new_status = CONTACT_STATUS_FOR_EVENT.get(event_type)
    if not new_status or not contact_id:
        return False
    updated = (
        Contact.objects.filter(pk=contact_id)
        .exclude(status__in=("deleted", new_status))
        .update(status=new_status, updated_at=timezone.now())
    )
    if updated:
        logger.info(f"Contact {contact_id} marked {new_status}")
    return bool(updated)


def parse_occurred_at(value):
    """ISO timestamp from a provider payload, or None when absent or invalid."""
    if not isinstance(value, str):
        return None
    try:
        parsed = parse_datetime(value)
    except ValueError:
        return None
    if parsed is not None and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def as_uuid(value):
    """Parse an id from an untrusted payload; None when it isn't a UUID."""
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None
