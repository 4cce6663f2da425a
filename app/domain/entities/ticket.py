"""Ticket entity — the routing-relevant projection of a support ticket."""

from dataclasses import dataclass
from datetime import datetime

from app.domain.value_objects.enums import TicketPriority, TicketStatus


@dataclass
class Ticket:
    id: int | None
    subject: str | None
    customer_email: str | None
    customer_name: str | None
    priority: TicketPriority
    category: str | None
    department_id: int | None
    product_model: str | None
    created_at: datetime
    assignee_id: int | None = None
    status: TicketStatus = TicketStatus.OPEN
    first_response_at: datetime | None = None
    first_response_time_seconds: int | None = None

    def is_assigned(self) -> bool:
        return self.assignee_id is not None

    def is_active(self) -> bool:
        return self.status in TicketStatus.active()

    def awaiting_first_response(self) -> bool:
        return self.first_response_at is None and self.first_response_time_seconds is None

    def age_seconds(self, now: datetime) -> int:
        """Whole seconds elapsed since the ticket was created."""
        return int((now - self.created_at).total_seconds())
