"""TicketEventHandler — internal trigger points for routing and SLA checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.application.ports.ticket_repo import TicketRepository
from app.application.use_cases.assign_ticket import AssignmentResult, AssignTicketUseCase
from app.application.use_cases.monitor_sla import SLARiskMonitor
from app.domain.entities.notification import Notification
from app.domain.entities.ticket import Ticket
from app.domain.exceptions import TicketNotFoundError
from app.domain.value_objects.enums import TicketStatus

logger = logging.getLogger(__name__)


@dataclass
class TicketEventResult:
    ticket: Ticket
    assignment: AssignmentResult | None = None
    notifications: list[Notification] = field(default_factory=list)


class TicketEventHandler:
    """Runs the engine and the single-ticket SLA check on ticket events.

    The SLA check is best-effort: a failure is logged and never fails the
    event that triggered it.
    """

    def __init__(
        self,
        assign_ticket: AssignTicketUseCase,
        monitor: SLARiskMonitor,
        ticket_repo: TicketRepository,
    ):
        self._assign = assign_ticket
        self._monitor = monitor
        self._tickets = ticket_repo

    async def on_ticket_created(self, ticket: Ticket) -> TicketEventResult:
        saved = await self._tickets.save(ticket)
        assignment = await self._assign.execute(saved.id)
        notifications = await self._safe_check(saved.id)
        return TicketEventResult(
            ticket=await self._reload(saved.id),
            assignment=assignment,
            notifications=notifications,
        )

    async def on_status_changed(self, ticket_id: int, status: TicketStatus) -> TicketEventResult:
        ticket = await self._tickets.update_status(ticket_id, status)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        logger.info("Ticket %s status → %s", ticket_id, status.value)
        return TicketEventResult(ticket=ticket, notifications=await self._safe_check(ticket_id))

    async def on_ticket_viewed(self, ticket_id: int) -> TicketEventResult:
        ticket = await self._reload(ticket_id)
        return TicketEventResult(ticket=ticket, notifications=await self._safe_check(ticket_id))

    async def _reload(self, ticket_id: int) -> Ticket:
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        return ticket

    async def _safe_check(self, ticket_id: int) -> list[Notification]:
        try:
            return await self._monitor.check_ticket(ticket_id)
        except Exception:
            logger.exception("SLA check for ticket %s failed", ticket_id)
            return []
