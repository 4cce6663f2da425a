"""Webhook notification dispatcher — implements NotificationDispatcher."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging

import httpx

from app.application.ports.notification_port import NotificationDispatcher
from app.config import settings
from app.domain.entities.notification import Notification

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Helpdesk-Signature"


class WebhookDispatcher(NotificationDispatcher):
    """POSTs each notification as JSON to the configured webhook URL.

    The body is signed with HMAC-SHA256 when a secret is configured.
    Delivery failures are raised so the caller does not record the alert.
    """

    def __init__(
        self,
        url: str | None = None,
        secret: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = url or settings.notification_webhook_url
        self._secret = secret if secret is not None else settings.notification_webhook_secret
        self._timeout = timeout
        self._transport = transport

    def _payload(self, notification: Notification) -> dict:
        link = notification.link
        if link and link.startswith("/"):
            link = settings.public_base_url.rstrip("/") + link
        return {
            "event": notification.type.value,
            "recipients": notification.recipient_ids,
            "title": notification.title,
            "message": notification.message,
            "link": link,
            "metadata": notification.metadata,
            "createdAt": notification.created_at.isoformat() if notification.created_at else None,
        }

    def sign(self, body: bytes) -> str:
        return hmac.new(self._secret.encode(), body, hashlib.sha256).hexdigest()

    async def send(self, notification: Notification) -> None:
        body = json.dumps(self._payload(notification)).encode()
        headers = {"Content-Type": "application/json"}
        if self._secret:
            headers[SIGNATURE_HEADER] = self.sign(body)

        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            response = await client.post(self._url, content=body, headers=headers)
            response.raise_for_status()

        logger.info(
            "Webhook delivered %s for ticket %s (%d)",
            notification.type.value, notification.ticket_id, response.status_code,
        )
