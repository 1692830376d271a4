"""
Signed, time-limited tokens for click and unsubscribe links.

Tokens are HS256 JWTs carrying a ``t`` claim that says which endpoint they
are good for, so a click token can't be replayed as an unsubscribe.
"""

from datetime import timedelta

import jwt
from django.conf import settings
from django.utils import timezone

from .exceptions import InvalidTrackingToken

CLICK = "click"
UNSUBSCRIBE = "unsub"

ALGORITHM = "HS256"
MIN_UNSUBSCRIBE_TTL_DAYS = 7
MAX_UNSUBSCRIBE_TTL_DAYS = 30


def unsubscribe_ttl_days():
    days = settings.UNSUBSCRIBE_TOKEN_TTL_DAYS
    return max(MIN_UNSUBSCRIBE_TTL_DAYS, min(MAX_UNSUBSCRIBE_TTL_DAYS, days))


def _encode(claims, ttl, now=None):
    issued = now or timezone.now()
    claims = dict(claims, iat=issued, exp=issued + ttl)
    return jwt.encode(claims, settings.TRACKING_TOKEN_SECRET, algorithm=ALGORITHM)


def sign_click_token(tenant_id, campaign_id, contact_id, url, link_index, now=None):
    return _encode(
        {
            "t": CLICK,
            "tenant_id": str(tenant_id),
            "campaign_id": str(campaign_id),
            "contact_id": str(contact_id),
            "url": url,
            "link_index": link_index,
        },
        timedelta(days=settings.CLICK_TOKEN_TTL_DAYS),
        now=now,
    )


def sign_unsubscribe_token(tenant_id, campaign_id, contact_id, now=None):
    return _encode(
        {
            "t": UNSUBSCRIBE,
            "tenant_id": str(tenant_id),
            "campaign_id": str(campaign_id) if campaign_id else None,
            "contact_id": str(contact_id),
        },
        timedelta(days=unsubscribe_ttl_days()),
        now=now,
    )


def verify_token(token, expected_type):
    """
    Decode ``token`` and check it is of ``expected_type``.

    Raises:
        InvalidTrackingToken: bad signature, expired, malformed or wrong type
    """
    try:
        claims = jwt.decode(token, settings.TRACKING_TOKEN_SECRET, algorithms=[ALGORITHM])
    except jwt.PyJWTError as e:
        raise InvalidTrackingToken(str(e)) from e
    if claims.get("t") != expected_type:
        raise InvalidTrackingToken(f"Expected a {expected_type} token")
    return claims


def build_unsubscribe_url(token):
    return f"{settings.COMM_PUBLIC_BASE.rstrip('/')}/t/u/{token}"
