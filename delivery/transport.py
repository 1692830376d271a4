# delivery/transport.py
"""
Outbound transports.

A transport takes one ``OutboundMessage`` and either returns a
``SendResult`` or raises ``TransportError``; the sender treats any
``TransportError`` as transient and retries.
"""

import logging
from dataclasses import dataclass, field
from email.utils import make_msgid
from typing import Optional

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.mail import EmailMultiAlternatives, get_connection

from .exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass
class OutboundMessage:
    from_email: str
    to: str
    subject: str
    text: str = ""
    html: str = ""
    metadata: dict = field(default_factory=dict)
    headers: dict = field(default_factory=dict)


@dataclass
class SendResult:
    message_id: Optional[str]
    status: str = "queued"
    raw: dict = field(default_factory=dict)

    def as_payload(self):
        return {"status": self.status, "message_id": self.message_id, **self.raw}


class DjangoMailTransport:
    """Send through Django's configured ``EMAIL_BACKEND`` (SMTP in production)."""

    name = "smtp"

    def __init__(self, connection=None):
        self.connection = connection

    def send(self, message):
        domain = message.from_email.rpartition("@")[2] or None
        message_id = make_msgid(domain=domain)
        headers = dict(message.headers)
        headers["Message-ID"] = message_id

        email = EmailMultiAlternatives(
            subject=message.subject,
            body=message.text or "",
            from_email=message.from_email,
            to=[message.to],
            headers=headers,
            connection=self.connection or get_connection(fail_silently=False),
        )
        if message.html:
            email.attach_alternative(message.html, "text/html")

        try:
            sent = email.send(fail_silently=False)
        except Exception as e:
            raise TransportError(f"SMTP send failed: {str(e)}") from e
        if sent != 1:
            raise TransportError("Mail backend accepted no messages")

        logger.debug(f"Email handed to mail backend: {message_id} to {message.to}")
        return SendResult(message_id=message_id, raw={"transport": self.name})


class HttpApiTransport:
    """POST messages to the delivery provider's REST API."""

    name = "api"

    def __init__(self, base_url=None, api_key=None, timeout=None, session=None):
        self.base_url = (base_url or settings.DELIVERY_API_BASE).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.DELIVERY_API_KEY
        self.timeout = timeout or settings.DELIVERY_API_TIMEOUT
        self.session = session or requests.Session()

    def send(self, message):
        if not self.api_key:
            raise TransportError("DELIVERY_API_KEY is not configured")
        try:
            response = self.session.post(
                f"{self.base_url}/v1/send",
                json={
                    "from": message.from_email,
                    "to": message.to,
                    "subject": message.subject,
                    "text": message.text or None,
                    "html": message.html or None,
                    "metadata": message.metadata,
                    "headers": message.headers,
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"send request failed: {str(e)}") from e

        if not response.ok:
            raise TransportError(f"send failed: {response.status_code} {response.text[:200]}")

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        inner = data.get("data") if isinstance(data.get("data"), dict) else {}
        message_id = inner.get("messageId") or data.get("messageId") or data.get("message_id")
        return SendResult(
            message_id=message_id,
            status=inner.get("status") or "queued",
            raw={"transport": self.name},
        )


def get_transport(name=None):
    name = name or settings.MAIL_TRANSPORT
    if name == "smtp":
        return DjangoMailTransport()
    if name == "api":
        return HttpApiTransport()
    raise ImproperlyConfigured(f"Unknown MAIL_TRANSPORT: {name}")
