"""Port interface for the notification log."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime

from app.domain.entities.notification import Notification
from app.domain.value_objects.enums import NotificationType


class NotificationRepository(ABC):
    @abstractmethod
    async def save(self, notification: Notification) -> Notification:
        ...

    @abstractmethod
    async def exists_since(
        self,
        notification_type: NotificationType,
        ticket_id: int,
        sla_type: str,
        since: datetime,
    ) -> bool:
        """Whether a matching notification was created at or after ``since``."""
        ...

    @abstractmethod
    def ticket_lock(self, ticket_id: int) -> AbstractAsyncContextManager[None]:
        """Exclusive section for one ticket's dedup check and insert.

        Concurrent checks of the same ticket (sweep, ticket viewed) run one
        after the other, so the second one sees the first one's record.
        """
        ...
