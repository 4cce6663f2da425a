"""Port interface for ticket persistence."""

from abc import ABC, abstractmethod

from app.domain.entities.ticket import Ticket
from app.domain.value_objects.enums import TicketStatus


class TicketRepository(ABC):
    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        ...

    @abstractmethod
    async def get_by_id(self, ticket_id: int) -> Ticket | None:
        ...

    @abstractmethod
    async def get_active(self) -> list[Ticket]:
        """Return a snapshot of open and pending tickets, ordered by id."""
        ...

    @abstractmethod
    async def update_routing(self, ticket: Ticket) -> Ticket:
        """Persist ``assignee_id`` and ``department_id`` after an assignment."""
        ...

    @abstractmethod
    async def update_status(self, ticket_id: int, status: TicketStatus) -> Ticket | None:
        ...
