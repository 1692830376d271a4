"""
Audience resolution for a campaign.

Candidates are the active members of every live list attached to the
campaign, restricted to active contacts and with account-suppressed emails
removed, deduplicated on lower-cased email. When two memberships share an
email the one with the lowest membership id wins, so the result is stable
for a fixed set of rows.

Contacts that already have any ledger event for the campaign are
"processed": they are never handed to the sender again, whatever the
event type.
"""

import logging
from dataclasses import dataclass, field

from django.db.models import Exists, OuterRef
from django.db.models.functions import Lower

from tracking.models import EmailEvent
from .models import ListMembership, Suppression

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    contact_id: object
    email: str
    name: str = ""
    identity_name: str = ""
    membership_id: int = 0


@dataclass
class AudienceResolution:
    candidates: list = field(default_factory=list)
    remaining: list = field(default_factory=list)

    @property
    def total_candidates(self):
        return len(self.candidates)

    @property
    def remaining_count(self):
        return len(self.remaining)

    @property
    def processed_count(self):
        return len(self.candidates) - len(self.remaining)


def candidate_recipients(campaign):
    suppressed = Suppression.objects.filter(
        account_id=campaign.tenant.account_id, email=OuterRef("email_lower")
    )
    rows = (
        ListMembership.objects.filter(
            contact_list__campaigns=campaign,
            contact_list__tenant_id=campaign.tenant_id,
            contact_list__deleted_at__isnull=True,
            status="active",
            contact__tenant_id=campaign.tenant_id,
            contact__status="active",
        )
        .annotate(email_lower=Lower("contact__email"))
        .filter(~Exists(suppressed))
        .order_by("id")
        .values(
            "id",
            "contact_id",
            "contact__email",
            "contact__name",
            "contact__identity_name",
            "email_lower",
        )
    )

    seen = set()
    recipients = []
    for row in rows:
        if row["email_lower"] in seen:
            continue
        seen.add(row["email_lower"])
        recipients.append(
            Recipient(
                contact_id=row["contact_id"],
                email=row["contact__email"],
                name=row["contact__name"],
                identity_name=row["contact__identity_name"],
                membership_id=row["id"],
            )
        )
    return recipients


def processed_contact_ids(campaign):
    return set(
        EmailEvent.objects.filter(campaign=campaign, contact__isnull=False)
        .values_list("contact_id", flat=True)
        .distinct()
    )


def resolve_audience(campaign):
    candidates = candidate_recipients(campaign)
    processed = processed_contact_ids(campaign)
    remaining = [r for r in candidates if r.contact_id not in processed]
    logger.debug(
        f"Audience for campaign {campaign.pk}: {len(candidates)} candidates, "
        f"{len(remaining)} remaining"
    )
    return AudienceResolution(candidates=candidates, remaining=remaining)
