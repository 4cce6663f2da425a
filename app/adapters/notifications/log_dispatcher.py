"""Logging notification dispatcher — used when no webhook is configured."""

from __future__ import annotations

import logging

from app.application.ports.notification_port import NotificationDispatcher
from app.domain.entities.notification import Notification

logger = logging.getLogger(__name__)


class LogDispatcher(NotificationDispatcher):
    """Writes notifications to the application log instead of delivering them."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "[%s] %s → recipients %s: %s",
            notification.type.value,
            notification.title,
            notification.recipient_ids,
            notification.message,
        )
