"""Notification entity — an alert recorded in the notification log."""

from dataclasses import dataclass, field
from datetime import datetime

from app.domain.value_objects.enums import NotificationType


@dataclass
class Notification:
    id: int | None
    type: NotificationType
    recipient_ids: list[int]
    title: str
    message: str
    link: str | None = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def ticket_id(self) -> int | None:
        return self.metadata.get("ticketId")

    @property
    def sla_type(self) -> str | None:
        return self.metadata.get("slaType")
