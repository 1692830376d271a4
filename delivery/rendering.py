"""
Per-recipient rendering of a compiled artifact.

This is phase two of the placeholder scheme: merge fields are filled from
the contact, each tracked link's ``TRACK_TOKEN`` placeholder becomes a
signed click token for this contact, and ``{{unsubscribe_url}}`` becomes
the contact's signed unsubscribe link.
"""

import logging
from dataclasses import dataclass

from django.conf import settings

from campaigns.link_processor import tracking_placeholder
from campaigns.placeholders import click_marker, find_tracking_links, substitute
from tracking.tokens import build_unsubscribe_url, sign_click_token, sign_unsubscribe_token
from .transport import OutboundMessage

logger = logging.getLogger(__name__)


@dataclass
class RenderedContent:
    subject: str
    html: str
    text: str


def _tracked_links(campaign, artifact):
    link_map = (artifact.meta or {}).get("link_map") if artifact else None
    if link_map:
        return [
            {
                "index": entry["index"],
                "placeholder": tracking_placeholder(campaign.pk, entry["index"]),
                "destination": entry.get("final_destination_url"),
            }
            for entry in link_map
            if entry.get("tracked")
        ]
    # Link map never got persisted; recover the markers from the HTML itself
    return find_tracking_links(artifact.html_compiled if artifact else "", campaign.pk)


def sign_click_links(html, campaign, recipient, links):
    for link in links:
        if not link.get("destination"):
            continue
        token = sign_click_token(
            tenant_id=campaign.tenant_id,
            campaign_id=campaign.pk,
            contact_id=recipient.contact_id,
            url=link["destination"],
            link_index=link["index"],
        )
        html = html.replace(click_marker(link["placeholder"]), click_marker(token))
    return html


def render_for_recipient(campaign, artifact, recipient, unsubscribe_url):
    """
    Render the artifact for one recipient, or the raw template when the
    campaign was never compiled.
    """
    values = {
        "name": recipient.name or "",
        "identity_name": recipient.identity_name or "",
        "unsubscribe_url": unsubscribe_url,
    }
    if artifact is not None:
        subject, html, text = artifact.subject, artifact.html_compiled, artifact.text_compiled
        html = sign_click_links(html or "", campaign, recipient, _tracked_links(campaign, artifact))
    else:
        template = campaign.template
        subject, html, text = template.subject, template.html, template.text

    return RenderedContent(
        subject=substitute(subject or "", values),
        html=substitute(html or "", values),
        text=substitute(text or "", values),
    )


def unsubscribe_headers(unsubscribe_url):
    mailto = f"<mailto:{settings.COMM_UNSUB_MAILTO}>"
    return {
        "List-Unsubscribe": f"<{unsubscribe_url}>, {mailto}" if unsubscribe_url else mailto,
        "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
    }


def build_message(campaign, artifact, recipient):
    """Everything the transport needs to send this campaign to ``recipient``."""
    token = sign_unsubscribe_token(campaign.tenant_id, campaign.pk, recipient.contact_id)
    unsubscribe_url = build_unsubscribe_url(token)
    content = render_for_recipient(campaign, artifact, recipient, unsubscribe_url)
    return OutboundMessage(
        from_email=settings.COMM_FROM_ADDRESS,
        to=recipient.email,
        subject=content.subject,
        text=content.text,
        html=content.html,
        metadata={
            "campaign_id": str(campaign.pk),
            "contact_id": str(recipient.contact_id),
            "motor_block_id": campaign.motor_block_id,
            "artifact_version": artifact.version if artifact else None,
        },
        headers=unsubscribe_headers(unsubscribe_url),
    )
