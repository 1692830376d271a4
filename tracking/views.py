# tracking/views.py
"""
Public endpoints hit from inside delivered emails and by the delivery
provider: click redirects, unsubscribe links, and the signed event webhook.

Click and unsubscribe never fail the request on a bad token; they fall back
to a raw-URL redirect or a small HTML page.
"""

import hashlib
import hmac
import json
import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from django.conf import settings
from django.db import transaction
from django.http import HttpResponse, HttpResponseRedirect, JsonResponse
from django.shortcuts import render
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_POST

from audience.models import Contact
from audience.services import unsubscribe_contact
from campaigns.models import Campaign
from .exceptions import InvalidTrackingToken
from .ledger import (
    apply_terminal_status,
    as_uuid,
    normalize_event_type,
    normalize_message_id,
    parse_occurred_at,
    record_event_if_absent,
)
from .models import EmailEvent
from .tokens import CLICK, UNSUBSCRIBE, verify_token

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
MAX_USER_AGENT = 500
MAX_IP = 45


def _is_http_url(value):
    if not value:
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def _client_ip(request):
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")


def mask_email(email):
    local, _, domain = (email or "").partition("@")
    if not domain:
        return "***"
    return f"{local[:2]}***@{domain}"


def _link_error(request, status=400):
    return render(request, "tracking/link_error.html", status=status)


def record_click(claims, request):
    """Append a ``clicked`` event and stamp the contact's last engagement."""
    campaign = Campaign.objects.filter(pk=as_uuid(claims.get("campaign_id"))).only(
        "id", "tenant_id", "motor_block_id"
    ).first()
    if campaign is None:
        logger.warning(f"Click for unknown campaign {claims.get('campaign_id')}")
        return None

    contact_id = as_uuid(claims.get("contact_id"))
    if not Contact.objects.filter(pk=contact_id, tenant_id=campaign.tenant_id).exists():
        contact_id = None

    with transaction.atomic():
        event = EmailEvent.objects.create(
            tenant_id=campaign.tenant_id,
            campaign=campaign,
            contact_id=contact_id,
            motor_block_id=campaign.motor_block_id,
            type="clicked",
            payload={
                "original_url": claims.get("url"),
                "link_index": claims.get("link_index"),
                "user_agent": request.META.get("HTTP_USER_AGENT", "")[:MAX_USER_AGENT],
                "ip": _client_ip(request)[:MAX_IP],
            },
        )
        if contact_id:
            Contact.objects.filter(pk=contact_id).update(last_engagement_at=timezone.now())
    return event


@require_http_methods(["GET", "HEAD"])
def click(request, token):
    raw_url = request.GET.get("url")
    try:
        claims = verify_token(token, CLICK)
    except InvalidTrackingToken as e:
        logger.warning(f"Invalid click token: {str(e)}")
        if _is_http_url(raw_url):
            return HttpResponseRedirect(raw_url)
        return _link_error(request)

    destination = claims.get("url") or raw_url
    if not _is_http_url(destination):
        return _link_error(request)

    try:
        record_click(claims, request)
    except Exception as e:
        logger.error(f"Error recording click for campaign {claims.get('campaign_id')}: {str(e)}")

    return HttpResponseRedirect(destination)


def _landing_redirect(landing_url, contact, campaign_id):
    parts = urlsplit(landing_url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    params += [
        ("status", "unsubscribed"),
        ("email", mask_email(contact.email)),
    ]
    if campaign_id:
        params.append(("campaign", str(campaign_id)))
    target = urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment))
    return HttpResponseRedirect(target)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def unsubscribe(request, token):
    """
    Unsubscribe link target. GET comes from a person clicking the link,
    POST from a mail client's one-click ``List-Unsubscribe-Post``.
    """
    try:
        claims = verify_token(token, UNSUBSCRIBE)
    except InvalidTrackingToken as e:
        logger.warning(f"Invalid unsubscribe token: {str(e)}")
        return _link_error(request)

    contact = (
        Contact.objects.select_related("tenant__account")
        .filter(pk=as_uuid(claims.get("contact_id")), tenant_id=as_uuid(claims.get("tenant_id")))
        .first()
    )
    if contact is None:
        logger.warning(f"Unsubscribe for unknown contact {claims.get('contact_id')}")
        return _link_error(request, status=404)

    campaign_id = as_uuid(claims.get("campaign_id"))
    if campaign_id and not Campaign.objects.filter(pk=campaign_id, tenant_id=contact.tenant_id).exists():
        campaign_id = None

    landing_url = contact.tenant.customer_landing_url()
    variant = "customer" if landing_url else "platform"
    try:
        unsubscribe_contact(
            contact, source="link", landing_variant=variant, campaign_id=campaign_id
        )
    except Exception as e:
        logger.error(f"Error unsubscribing contact {contact.pk}: {str(e)}")
        return _link_error(request, status=500)

    if request.method == "POST":
        return HttpResponse("Unsubscribed", content_type="text/plain")
    if landing_url:
        return _landing_redirect(landing_url, contact, campaign_id)
    return render(
        request,
        "tracking/unsubscribed.html",
        {"masked_email": mask_email(contact.email), "tenant_name": contact.tenant.name},
    )


def _signature_valid(request):
    secret = settings.DELIVERY_WEBHOOK_SECRET
    if not secret:
        return True
    signature = request.headers.get(SIGNATURE_HEADER, "").strip().lower()
    if not signature:
        return False
    computed = hmac.new(secret.encode("utf-8"), request.body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, signature)


def _resolve_campaign(payload, message_id):
    campaign_id = as_uuid(payload.get("campaign_id"))
    if campaign_id:
        campaign = Campaign.objects.filter(pk=campaign_id).values("id", "tenant_id").first()
        if campaign:
            return campaign
    if message_id:
        known = (
            EmailEvent.objects.filter(message_id=message_id, campaign__isnull=False)
            .values("campaign_id", "campaign__tenant_id")
            .first()
        )
        if known:
            return {"id": known["campaign_id"], "tenant_id": known["campaign__tenant_id"]}
    return None


@csrf_exempt
@require_POST
def delivery_webhook(request):
    if not _signature_valid(request):
        logger.error("Invalid delivery webhook signature")
        return HttpResponse(status=401)

    try:
        payload = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"Invalid JSON in webhook payload: {str(e)}")
        return HttpResponse(status=400)
    if not isinstance(payload, dict):
        return HttpResponse(status=400)

    event_type = normalize_event_type(payload.get("type"))
    message_id = normalize_message_id(payload.get("message_id"))
    campaign = _resolve_campaign(payload, message_id)
    if campaign is None:
        logger.info(f"Webhook event {event_type} for unknown campaign, ignoring")
        return JsonResponse({"status": "ignored"}, status=202)

    contact_id = as_uuid(payload.get("contact_id"))
    if contact_id and not Contact.objects.filter(pk=contact_id, tenant_id=campaign["tenant_id"]).exists():
        contact_id = None
    occurred_at = parse_occurred_at(payload.get("occurred_at"))

    try:
        with transaction.atomic():
            _, created = record_event_if_absent(
                campaign["tenant_id"],
                event_type,
                campaign_id=campaign["id"],
                contact_id=contact_id,
                message_id=message_id,
                motor_block_id=payload.get("motor_block_id") or "",
                payload=payload,
                occurred_at=occurred_at,
            )
            if created:
                apply_terminal_status(contact_id, event_type)
    except Exception as e:
        logger.error(f"Error storing webhook event for campaign {campaign['id']}: {str(e)}")
        return HttpResponse(status=500)

    return JsonResponse({"status": "ok", "created": created})
