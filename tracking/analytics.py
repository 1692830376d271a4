"""
Per-campaign summary over the event ledger.
"""

from collections import defaultdict

from django.db.models import Count

from campaigns.repository import latest_artifact
from .models import EmailEvent


def _rate(part, whole):
    return round(part / whole * 100, 2) if whole else 0.0


def link_performance(campaign, clicks=None):
    """
    Join the latest artifact's link map with clicked events by link index.
    Only tracked links are reported.
    """
    artifact = latest_artifact(campaign.pk)
    link_map = (artifact.meta or {}).get("link_map", []) if artifact else []

    if clicks is None:
        clicks = EmailEvent.objects.filter(campaign=campaign, type="clicked").values_list(
            "payload__link_index", "contact_id"
        )
    totals = defaultdict(int)
    contacts = defaultdict(set)
    for link_index, contact_id in clicks:
        if link_index is None:
            continue
        totals[link_index] += 1
        if contact_id:
            contacts[link_index].add(contact_id)

    performance = []
    for entry in link_map:
        if not entry.get("tracked"):
            continue
        index = entry.get("index")
        performance.append(
            {
                "index": index,
                "url": entry.get("final_destination_url") or entry.get("original_url"),
                "text": entry.get("text", ""),
                "clicks": totals.get(index, 0),
                "unique_clicks": len(contacts.get(index, ())),
            }
        )
    performance.sort(key=lambda row: (-row["clicks"], row["index"]))
    return performance


def campaign_summary(campaign):
    rows = (
        EmailEvent.objects.filter(campaign=campaign)
        .values("type")
        .annotate(total=Count("id"), unique_contacts=Count("contact", distinct=True))
    )
    by_type = {row["type"]: {"total": row["total"], "unique": row["unique_contacts"]} for row in rows}

    def unique(event_type):
        return by_type.get(event_type, {}).get("unique", 0)

    sent = unique("queued") + unique("sent")
    delivered = unique("delivered")
    base = delivered or sent
    return {
        "campaign_id": str(campaign.pk),
        "status": campaign.status,
        "events": by_type,
        "sent": sent,
        "delivered": delivered,
        "failed": unique("failed"),
        "bounced": unique("bounced"),
        "complained": unique("complained"),
        "clicked": unique("clicked"),
        "delivery_rate": _rate(delivered, sent),
        "bounce_rate": _rate(unique("bounced"), sent),
        "click_rate": _rate(unique("clicked"), base),
        "links": link_performance(campaign),
    }
