"""
Contact and list operations that span more than one table.

Each operation runs in one transaction; a failure part-way through leaves
memberships, suppressions and contact status exactly as they were.
"""

import logging
from datetime import datetime, time, timezone as dt_timezone

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from tracking.ledger import record_event
from .exceptions import InvalidFilterDefinition, ListNotFound
from .models import Contact, ContactList, ListMembership, Suppression

logger = logging.getLogger(__name__)

FILTER_KEYS = ("email_domain", "name_contains", "status", "created_after")
CONTACT_STATUSES = {choice for choice, _ in Contact.STATUS_CHOICES}


def unsubscribe_contact(contact, source="link", landing_variant="", campaign_id=None):
    """
    Suppress the contact's email account-wide and flip the contact to
    ``unsubscribed``. Link unsubscribes also land in the event ledger as a
    ``complained`` event with reason ``unsubscribe``. Safe to repeat.

    Returns True when anything changed.
    """
    email = contact.email.strip().lower()
    with transaction.atomic():
        _, suppression_created = Suppression.objects.get_or_create(
            account_id=contact.tenant.account_id,
            email=email,
            defaults={
                "reason": "unsubscribe",
                "source": source,
                "landing_variant": landing_variant,
            },
        )
        flipped = (
            Contact.objects.filter(pk=contact.pk)
            .exclude(status__in=("unsubscribed", "deleted"))
            .update(status="unsubscribed", updated_at=timezone.now())
        )
        changed = suppression_created or bool(flipped)
        if changed and source == "link":
            record_event(
                contact.tenant_id,
                "complained",
                campaign_id=campaign_id,
                contact_id=contact.pk,
                payload={"reason": "unsubscribe", "landing_variant": landing_variant},
            )

    if changed:
        logger.info(f"Contact {contact.pk} unsubscribed via {source}")
    return changed


def resubscribe_contact(contact):
    """Lift the account suppression and reactivate the contact."""
    email = contact.email.strip().lower()
    with transaction.atomic():
        removed, _ = Suppression.objects.filter(
            account_id=contact.tenant.account_id, email=email
        ).delete()
        Contact.objects.filter(pk=contact.pk).exclude(status="deleted").update(
            status="active", updated_at=timezone.now()
        )
        record_event(
            contact.tenant_id,
            "resubscribed",
            contact_id=contact.pk,
            payload={"source": "manual", "suppressions_removed": removed},
        )
    logger.info(f"Contact {contact.pk} resubscribed ({removed} suppressions removed)")
    contact.refresh_from_db()
    return contact


def bulk_move(tenant, source_list, contact_ids, target_list_id):
    """
    Move contacts from ``source_list`` to another list of the same tenant.

    Returns the number of memberships that became active on the target.

    Raises:
        ListNotFound: target list is missing, deleted or another tenant's
    """
    target = ContactList.objects.filter(
        pk=target_list_id, tenant=tenant, deleted_at__isnull=True
    ).first()
    if target is None:
        raise ListNotFound(f"Target list {target_list_id} not found")

    with transaction.atomic():
        ListMembership.objects.filter(
            contact_list=source_list, contact_id__in=contact_ids
        ).update(status="removed")

        valid_ids = Contact.objects.filter(tenant=tenant, pk__in=contact_ids).values_list(
            "pk", flat=True
        )
        added = 0
        for contact_id in valid_ids:
            membership, created = ListMembership.objects.get_or_create(
                contact_list=target, contact_id=contact_id, defaults={"status": "active"}
            )
            if created:
                added += 1
            elif membership.status != "active":
                membership.status = "active"
                membership.save(update_fields=["status"])
                added += 1

    logger.info(f"Moved {len(contact_ids)} contacts {source_list.pk} -> {target.pk}: {added} added")
    return added


def _parse_created_after(value):
    if not isinstance(value, str):
        raise InvalidFilterDefinition("created_after must be an ISO date or datetime string")
    try:
        parsed = parse_datetime(value)
        if parsed is None:
            day = parse_date(value)
            parsed = datetime.combine(day, time.min) if day else None
    except ValueError:
        parsed = None
    if parsed is None:
        raise InvalidFilterDefinition(f"created_after is not a valid date: {value!r}")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def validate_filter_definition(definition):
    """
    Check a smart-list filter and return it normalized.

    Raises:
        InvalidFilterDefinition: unknown key or malformed value
    """
    if not isinstance(definition, dict):
        raise InvalidFilterDefinition("Filter definition must be an object")
    unknown = sorted(set(definition) - set(FILTER_KEYS))
    if unknown:
        raise InvalidFilterDefinition(f"Unknown filter keys: {', '.join(unknown)}")

    cleaned = {}
    domain = definition.get("email_domain")
    if domain is not None:
        if not isinstance(domain, str) or not domain.strip().lstrip("@"):
            raise InvalidFilterDefinition("email_domain must be a non-empty string")
        cleaned["email_domain"] = domain.strip().lstrip("@").lower()

    name = definition.get("name_contains")
    if name is not None:
        if not isinstance(name, str) or not name.strip():
            raise InvalidFilterDefinition("name_contains must be a non-empty string")
        cleaned["name_contains"] = name.strip()

    status = definition.get("status")
    if status is not None:
        if status not in CONTACT_STATUSES:
            raise InvalidFilterDefinition(f"Unknown contact status: {status!r}")
        cleaned["status"] = status

    if definition.get("created_after") is not None:
        cleaned["created_after"] = _parse_created_after(definition["created_after"])
    return cleaned


def apply_smart_filter(tenant, definition):
    cleaned = validate_filter_definition(definition)
    contacts = Contact.objects.filter(tenant=tenant).exclude(status="deleted")
    if "email_domain" in cleaned:
        contacts = contacts.filter(email__iendswith=f"@{cleaned['email_domain']}")
    if "name_contains" in cleaned:
        contacts = contacts.filter(name__icontains=cleaned["name_contains"])
    if "status" in cleaned:
        contacts = contacts.filter(status=cleaned["status"])
    if "created_after" in cleaned:
        contacts = contacts.filter(created_at__gt=cleaned["created_after"])
    return contacts


def refresh_smart_list(contact_list):
    """
    Materialize a smart list's filter into memberships.

    Returns ``{"added": n, "removed": n, "total": n}``.
    """
    if not contact_list.is_smart:
        raise InvalidFilterDefinition("List is not a smart list")

    with transaction.atomic():
        matching = set(
            apply_smart_filter(contact_list.tenant, contact_list.filter_definition).values_list(
                "pk", flat=True
            )
        )
        current = {m.contact_id: m for m in contact_list.memberships.all()}

        removed = (
            ListMembership.objects.filter(contact_list=contact_list, status="active")
            .exclude(contact_id__in=matching)
            .update(status="removed")
        )
        reactivated = ListMembership.objects.filter(
            contact_list=contact_list, status="removed", contact_id__in=matching
        ).update(status="active")
        ListMembership.objects.bulk_create(
            [
                ListMembership(contact_list=contact_list, contact_id=contact_id)
                for contact_id in sorted(matching - set(current), key=str)
            ]
        )
        added = reactivated + len(matching - set(current))

    logger.info(f"Smart list {contact_list.pk} refreshed: +{added} -{removed}")
    return {"added": added, "removed": removed, "total": len(matching)}
