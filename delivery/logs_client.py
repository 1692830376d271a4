"""
Client for the delivery provider's per-motor-block log API.
"""

import logging

import requests
from django.conf import settings

from .exceptions import DeliveryLogError

logger = logging.getLogger(__name__)


class DeliveryLogClient:
    def __init__(self, base_url=None, token=None, timeout=None, session=None):
        self.base_url = (base_url or settings.DELIVERY_API_BASE).rstrip("/")
        self.token = token if token is not None else settings.DELIVERY_LOGS_TOKEN
        self.timeout = timeout or settings.DELIVERY_API_TIMEOUT
        self.session = session or requests.Session()

    @property
    def configured(self):
        return bool(self.token)

    def fetch_logs(self, motor_block_id, limit=100):
        """
        Return the most recent log items for ``motor_block_id``.

        Each item looks like ``{"messageId", "status", "metadata",
        "occurred_at"}``; the list is taken from ``data.items`` or a
        top-level ``items``.

        Raises:
            DeliveryLogError: network failure, non-200 status or bad JSON
        """
        url = f"{self.base_url}/api/public/v1/motor-blocks/{motor_block_id}/logs"
        try:
            response = self.session.get(
                url,
                params={"limit": limit},
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise DeliveryLogError(f"Log request failed: {str(e)}") from e

        if response.status_code != 200:
            raise DeliveryLogError(f"Log API returned {response.status_code} for {motor_block_id}")
        try:
            data = response.json()
        except ValueError as e:
            raise DeliveryLogError(f"Log API returned invalid JSON: {str(e)}") from e

        if not isinstance(data, dict):
            return []
        inner = data.get("data")
        items = inner.get("items") if isinstance(inner, dict) else None
        if items is None:
            items = data.get("items") or []
        return [item for item in items if isinstance(item, dict)]
