"""SLARiskMonitor — sweep open tickets and raise early-warning notifications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from app.application.ports.admin_repo import AdminRepository
from app.application.ports.department_repo import DepartmentRepository
from app.application.ports.notification_port import NotificationDispatcher
from app.application.ports.notification_repo import NotificationRepository
from app.application.ports.ticket_repo import TicketRepository
from app.domain.entities.department import Department
from app.domain.entities.notification import Notification
from app.domain.entities.ticket import Ticket
from app.domain.policies.sla_risk import (
    DEFAULT_RISK_FRACTIONS,
    RiskFractions,
    SLARisk,
    assess_risks,
)
from app.domain.policies.sla_thresholds import DEFAULT_SLA_POLICY, SLAPolicy, resolve_thresholds
from app.domain.value_objects.enums import NotificationType

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW = timedelta(minutes=60)

TicketCheck = Callable[[Ticket, Department | None, datetime], Awaitable[list[Notification]]]


@dataclass
class SweepReport:
    """Summary of one sweep over active tickets."""

    tickets_checked: int = 0
    notifications_sent: int = 0
    failed_ticket_ids: list[int] = field(default_factory=list)
    stopped_early: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_remaining(seconds: int) -> str:
    hours, rest = divmod(max(seconds, 0), 3600)
    return f"{hours}h {rest // 60}m"


class SLARiskMonitor:
    """Evaluates tickets against their SLA and notifies at most once per window.

    The monitor only reads tickets and writes notification records; it never
    mutates a ticket, so it can run alongside assignment and status changes.
    """

    def __init__(
        self,
        ticket_repo: TicketRepository,
        department_repo: DepartmentRepository,
        notification_repo: NotificationRepository,
        dispatcher: NotificationDispatcher,
        admin_repo: AdminRepository,
        *,
        defaults: SLAPolicy = DEFAULT_SLA_POLICY,
        fractions: RiskFractions = DEFAULT_RISK_FRACTIONS,
        dedup_window: timedelta = DEFAULT_DEDUP_WINDOW,
        ticket_timeout: float | None = None,
    ):
        self._tickets = ticket_repo
        self._departments = department_repo
        self._notifications = notification_repo
        self._dispatcher = dispatcher
        self._admins = admin_repo
        self._defaults = defaults
        self._fractions = fractions
        self._dedup_window = dedup_window
        self._ticket_timeout = ticket_timeout

    async def sweep(
        self,
        now: datetime | None = None,
        stop_event: asyncio.Event | None = None,
        check: TicketCheck | None = None,
    ) -> SweepReport:
        """Check every open/pending ticket once.

        Each ticket is isolated: an error or timeout is logged and the sweep
        moves on. ``stop_event`` is honoured between tickets only. ``check``
        replaces the per-ticket check, e.g. to run each ticket in its own
        transaction.
        """
        now = now or _utcnow()
        check = check or self.check_loaded
        tickets = await self._tickets.get_active()
        departments = {d.id: d for d in await self._departments.get_all()}
        report = SweepReport()

        for ticket in tickets:
            if stop_event is not None and stop_event.is_set():
                report.stopped_early = True
                logger.info("SLA sweep stopped after %d tickets", report.tickets_checked)
                break

            try:
                sent = await asyncio.wait_for(
                    check(ticket, departments.get(ticket.department_id), now),
                    timeout=self._ticket_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("SLA check for ticket %s timed out, skipping", ticket.id)
                report.failed_ticket_ids.append(ticket.id)
            except Exception:
                logger.exception("SLA check for ticket %s failed, skipping", ticket.id)
                report.failed_ticket_ids.append(ticket.id)
            else:
                report.notifications_sent += len(sent)
            report.tickets_checked += 1

        logger.info(
            "SLA sweep: %d tickets checked, %d notifications, %d failures",
            report.tickets_checked, report.notifications_sent, len(report.failed_ticket_ids),
        )
        return report

    async def check_ticket(self, ticket_id: int, now: datetime | None = None) -> list[Notification]:
        """On-demand check for a single ticket (created, status change, viewed)."""
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None or not ticket.is_active():
            return []

        department = None
        if ticket.department_id is not None:
            department = await self._departments.get_by_id(ticket.department_id)
        return await self.check_loaded(ticket, department, now or _utcnow())

    async def check_loaded(
        self, ticket: Ticket, department: Department | None, now: datetime
    ) -> list[Notification]:
        """Evaluate an already loaded ticket and notify for each window at risk."""
        thresholds = resolve_thresholds(ticket.priority, department, self._defaults)
        risks = list(assess_risks(ticket, thresholds, now, self._fractions))
        if not risks:
            return []

        sent = []
        # dedup check and insert must not interleave with another check of this ticket
        async with self._notifications.ticket_lock(ticket.id):
            for risk in risks:
                notification = await self._notify(ticket, risk, now)
                if notification is not None:
                    sent.append(notification)
        return sent

    async def _notify(self, ticket: Ticket, risk: SLARisk, now: datetime) -> Notification | None:
        already_sent = await self._notifications.exists_since(
            NotificationType.SLA_RISK,
            ticket.id,
            risk.sla_type.value,
            since=now - self._dedup_window,
        )
        if already_sent:
            logger.debug("Ticket %s %s risk already notified", ticket.id, risk.sla_type.value)
            return None

        is_unassigned = ticket.assignee_id is None
        recipients = [ticket.assignee_id] if not is_unassigned else await self._admins.get_admin_ids()
        if not recipients:
            logger.warning("Ticket %s is at SLA risk but there is nobody to notify", ticket.id)
            return None

        label = ticket.subject or str(ticket.id)
        notification = Notification(
            id=None,
            type=NotificationType.SLA_RISK,
            recipient_ids=recipients,
            title="SLA Risk Alert" + (" (unassigned)" if is_unassigned else ""),
            message=(
                f'Ticket "{label}" is at risk of breaching {risk.sla_type.value} SLA. '
                f"Time remaining: {_format_remaining(risk.time_remaining)}"
            ),
            link=f"/admin/tickets/{ticket.id}",
            metadata={
                "ticketId": ticket.id,
                "slaType": risk.sla_type.value,
                "timeRemaining": risk.time_remaining,
                "threshold": risk.threshold_seconds,
                "isUnassigned": is_unassigned,
            },
            created_at=now,
        )

        # Deliver before recording: a failed send is retried by the next sweep.
        await self._dispatcher.send(notification)
        await self._notifications.save(notification)
        logger.info(
            "SLA %s risk for ticket %s notified to %d recipient(s)",
            risk.sla_type.value, ticket.id, len(recipients),
        )
        return notification
