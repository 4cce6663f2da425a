"""Port interface for delivering notifications to people."""

from abc import ABC, abstractmethod

from app.domain.entities.notification import Notification


class NotificationDispatcher(ABC):
    @abstractmethod
    async def send(self, notification: Notification) -> None:
        """Deliver the notification to its recipients.

        Raises on delivery failure; the caller decides whether to retry.
        """
        ...
