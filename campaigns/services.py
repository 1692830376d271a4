"""
Campaign lifecycle transitions.

Completed and cancelled are terminal. The sender worker owns
scheduled -> sending -> completed; everything here is an operator action.
"""

import logging

from django.db import transaction
from django.utils import timezone

from .exceptions import CampaignStateError
from .models import Campaign

logger = logging.getLogger(__name__)


def _locked(campaign):
    return Campaign.objects.select_for_update().get(pk=campaign.pk)


def _transition(campaign, allowed_from, new_status, **changes):
    with transaction.atomic():
        locked = _locked(campaign)
        if locked.status not in allowed_from:
            raise CampaignStateError(
                f"Cannot move campaign from {locked.status} to {new_status}"
            )
        previous = locked.status
        locked.status = new_status
        for field_name, value in changes.items():
            setattr(locked, field_name, value)
        locked.save()
    logger.info(f"Campaign {locked.pk}: {previous} -> {new_status}")
    return locked


def schedule_campaign(campaign, scheduled_at=None, timezone_name=None):
    """
    Queue a draft campaign for the sender. ``scheduled_at`` of None means
    send as soon as the sender picks it up.
    """
    if campaign.template_id is None:
        raise CampaignStateError("Campaign has no template")
    changes = {"scheduled_at": scheduled_at}
    if timezone_name:
        changes["timezone"] = timezone_name
    return _transition(campaign, ("draft", "scheduled"), "scheduled", **changes)


def cancel_campaign(campaign):
    return _transition(campaign, ("draft", "scheduled", "sending", "paused"), "cancelled")


def pause_campaign(campaign):
    return _transition(campaign, ("scheduled", "sending"), "paused")


def resume_campaign(campaign):
    return _transition(campaign, ("paused",), "scheduled")


def complete_campaign(campaign_id, from_statuses=("sending",)):
    """
    Mark a campaign completed if it is still in one of ``from_statuses``.
    Returns True when this call made the transition.
    """
    updated = Campaign.objects.filter(pk=campaign_id, status__in=from_statuses).update(
        status="completed", completed_at=timezone.now(), updated_at=timezone.now()
    )
    if updated:
        logger.info(f"Campaign {campaign_id} completed")
    return bool(updated)


def update_send_settings(campaign, **values):
    """
    Apply pacing and scheduling settings. Accepts ``chunk_size``,
    ``delay_seconds_between_chunks``, ``timezone``, ``scheduled_at`` and
    ``clear_scheduled``; values must already be validated.
    """
    with transaction.atomic():
        locked = _locked(campaign)
        if locked.status in Campaign.TERMINAL_STATUSES:
            raise CampaignStateError(f"Cannot change settings of a {locked.status} campaign")

        for field_name in ("chunk_size", "delay_seconds_between_chunks", "timezone"):
            if values.get(field_name) is not None:
                setattr(locked, field_name, values[field_name])
        if values.get("clear_scheduled"):
            locked.scheduled_at = None
        elif values.get("scheduled_at") is not None:
            locked.scheduled_at = values["scheduled_at"]
        locked.save()
    return locked


def ensure_deletable(campaign):
    if campaign.status == "sending":
        raise CampaignStateError("Cannot delete a campaign while it is sending")
