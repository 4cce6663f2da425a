"""SQLAlchemy repository implementations."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.persistence.models import (
    AdministratorModel,
    AgentModel,
    AssignmentModel,
    AssignmentRuleModel,
    DepartmentModel,
    NotificationModel,
    RoundRobinCursorModel,
    TicketModel,
)
from app.application.ports.admin_repo import AdminRepository
from app.application.ports.agent_repo import AgentRepository
from app.application.ports.assignment_repo import AssignmentRepository
from app.application.ports.department_repo import DepartmentRepository
from app.application.ports.notification_repo import NotificationRepository
from app.application.ports.round_robin_repo import RoundRobinRepository
from app.application.ports.rule_repo import AssignmentRuleRepository
from app.application.ports.ticket_repo import TicketRepository
from app.domain.entities.agent import Agent
from app.domain.entities.assignment import Assignment
from app.domain.entities.assignment_rule import AssignmentRule
from app.domain.entities.department import Department
from app.domain.entities.notification import Notification
from app.domain.entities.ticket import Ticket
from app.domain.exceptions import PersistenceError
from app.domain.value_objects.enums import (
    NotificationType,
    PresenceStatus,
    TargetType,
    TicketPriority,
    TicketStatus,
)

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("Admin", "Super Admin", "Supervisor")

# First key of the two-key advisory lock taken per ticket by the SLA monitor.
SLA_NOTIFICATION_LOCK = 5_458_497

_ACTIVE_STATUSES = [s.value for s in TicketStatus.active()]


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Re-raise driver/ORM failures as PersistenceError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise PersistenceError(f"{action} failed: {e}") from e


# ─── Mappers ─────────────────────────────────────────────────────────


def _department_to_domain(m: DepartmentModel) -> Department:
    return Department(id=m.id, name=m.name, sla_config=m.sla_config)


def _parse_presence(value: str | None, agent_id: int) -> PresenceStatus:
    try:
        return PresenceStatus((value or "").lower())
    except ValueError:
        logger.warning("Agent %s has unknown presence %r, treating as offline", agent_id, value)
        return PresenceStatus.OFFLINE


def _parse_priority(value: str | None, ticket_id: int) -> TicketPriority:
    try:
        return TicketPriority((value or "").lower())
    except ValueError:
        logger.warning("Ticket %s has unknown priority %r, treating as low", ticket_id, value)
        return TicketPriority.LOW


def _agent_to_domain(m: AgentModel, open_count: int = 0) -> Agent:
    return Agent(
        id=m.id,
        name=m.name,
        department_id=m.department_id,
        skills=set(m.skills) if m.skills else set(),
        is_active=m.is_active,
        presence_status=_parse_presence(m.presence_status, m.id),
        current_open_ticket_count=open_count,
        max_load=m.max_load,
    )


def _ticket_to_domain(m: TicketModel) -> Ticket | None:
    """Map a ticket row; rows with a status outside TicketStatus are skipped."""
    try:
        status = TicketStatus((m.status or "").lower())
    except ValueError:
        logger.warning("Ticket %s has unknown status %r, skipping", m.id, m.status)
        return None

    return Ticket(
        id=m.id,
        subject=m.subject,
        customer_email=m.customer_email,
        customer_name=m.customer_name,
        priority=_parse_priority(m.priority, m.id),
        category=m.category,
        department_id=m.department_id,
        product_model=m.product_model,
        created_at=m.created_at,
        assignee_id=m.assignee_id,
        status=status,
        first_response_at=m.first_response_at,
        first_response_time_seconds=m.first_response_time_seconds,
    )


def _rule_to_domain(m: AssignmentRuleModel) -> AssignmentRule:
    config = m.config
    if config:
        try:
            config = json.loads(config)
        except ValueError:
            pass  # left as text; rejected when the rule is compiled
    return AssignmentRule(
        id=m.id,
        name=m.name,
        rule_type=m.rule_type,
        priority=m.priority,
        enabled=m.enabled,
        config=config,
        description=m.description,
        created_at=m.created_at,
    )


def _config_to_text(config) -> str | None:
    if config is None or isinstance(config, str):
        return config
    return json.dumps(config)


def _assignment_to_domain(m: AssignmentModel) -> Assignment:
    return Assignment(
        id=m.id,
        ticket_id=m.ticket_id,
        rule_id=m.rule_id,
        rule_type=m.rule_type,
        target_type=TargetType(m.target_type),
        target_id=m.target_id,
        reason=m.reason,
        assigned_at=m.assigned_at,
    )


# ─── Repositories ────────────────────────────────────────────────────


class SqlTicketRepository(TicketRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def save(self, ticket: Ticket) -> Ticket:
        m = TicketModel(
            subject=ticket.subject,
            customer_email=ticket.customer_email,
            customer_name=ticket.customer_name,
            priority=ticket.priority.value,
            category=ticket.category,
            department_id=ticket.department_id,
            product_model=ticket.product_model,
            assignee_id=ticket.assignee_id,
            status=ticket.status.value,
            first_response_at=ticket.first_response_at,
            first_response_time_seconds=ticket.first_response_time_seconds,
            created_at=ticket.created_at,
        )
        with _store_errors("Saving ticket"):
            self._s.add(m)
            await self._s.flush()
        ticket.id = m.id
        return ticket

    async def get_by_id(self, ticket_id: int) -> Ticket | None:
        with _store_errors(f"Loading ticket {ticket_id}"):
            m = await self._s.get(TicketModel, ticket_id)
        return _ticket_to_domain(m) if m else None

    async def get_active(self) -> list[Ticket]:
        with _store_errors("Loading active tickets"):
            result = await self._s.execute(
                select(TicketModel)
                .where(TicketModel.status.in_(_ACTIVE_STATUSES))
                .order_by(TicketModel.id)
            )
        tickets = (_ticket_to_domain(m) for m in result.scalars())
        return [t for t in tickets if t is not None]

    async def update_routing(self, ticket: Ticket) -> Ticket:
        with _store_errors(f"Updating ticket {ticket.id}"):
            await self._s.execute(
                update(TicketModel)
                .where(TicketModel.id == ticket.id)
                .values(assignee_id=ticket.assignee_id, department_id=ticket.department_id)
            )
            await self._s.flush()
        return ticket

    async def update_status(self, ticket_id: int, status: TicketStatus) -> Ticket | None:
        with _store_errors(f"Updating ticket {ticket_id}"):
            m = await self._s.get(TicketModel, ticket_id)
            if m is None:
                return None
            m.status = status.value
            await self._s.flush()
        return _ticket_to_domain(m)


class SqlAgentRepository(AgentRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def save(self, agent: Agent) -> Agent:
        m = AgentModel(
            name=agent.name,
            department_id=agent.department_id,
            skills=sorted(agent.skills),
            is_active=agent.is_active,
            presence_status=agent.presence_status.value,
            max_load=agent.max_load,
        )
        with _store_errors("Saving agent"):
            self._s.add(m)
            await self._s.flush()
        agent.id = m.id
        return agent

    async def get_all(self) -> list[Agent]:
        load = (
            select(
                TicketModel.assignee_id.label("agent_id"),
                func.count(TicketModel.id).label("open_count"),
            )
            .where(TicketModel.status.in_(_ACTIVE_STATUSES))
            .group_by(TicketModel.assignee_id)
            .subquery()
        )
        with _store_errors("Loading agents"):
            result = await self._s.execute(
                select(AgentModel, func.coalesce(load.c.open_count, 0))
                .outerjoin(load, load.c.agent_id == AgentModel.id)
                .order_by(AgentModel.id)
            )
        return [_agent_to_domain(m, count) for m, count in result.all()]


class SqlDepartmentRepository(DepartmentRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def save(self, department: Department) -> Department:
        m = DepartmentModel(name=department.name, sla_config=department.sla_config)
        with _store_errors("Saving department"):
            self._s.add(m)
            await self._s.flush()
        department.id = m.id
        return department

    async def get_by_id(self, department_id: int) -> Department | None:
        with _store_errors(f"Loading department {department_id}"):
            m = await self._s.get(DepartmentModel, department_id)
        return _department_to_domain(m) if m else None

    async def get_all(self) -> list[Department]:
        with _store_errors("Loading departments"):
            result = await self._s.execute(select(DepartmentModel).order_by(DepartmentModel.id))
        return [_department_to_domain(m) for m in result.scalars()]


class SqlAssignmentRuleRepository(AssignmentRuleRepository):
    _EDITABLE = ("name", "enabled", "priority", "config", "description")

    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_enabled(self) -> list[AssignmentRule]:
        with _store_errors("Loading assignment rules"):
            result = await self._s.execute(
                select(AssignmentRuleModel)
                .where(AssignmentRuleModel.enabled.is_(True))
                .order_by(AssignmentRuleModel.priority, AssignmentRuleModel.id)
            )
        return [_rule_to_domain(m) for m in result.scalars()]

    async def get_all(self) -> list[AssignmentRule]:
        with _store_errors("Loading assignment rules"):
            result = await self._s.execute(
                select(AssignmentRuleModel)
                .order_by(AssignmentRuleModel.priority, AssignmentRuleModel.id)
            )
        return [_rule_to_domain(m) for m in result.scalars()]

    async def get_by_id(self, rule_id: int) -> AssignmentRule | None:
        with _store_errors(f"Loading rule {rule_id}"):
            m = await self._s.get(AssignmentRuleModel, rule_id)
        return _rule_to_domain(m) if m else None

    async def save(self, rule: AssignmentRule) -> AssignmentRule:
        m = AssignmentRuleModel(
            name=rule.name,
            rule_type=rule.rule_type,
            priority=rule.priority,
            enabled=rule.enabled,
            config=_config_to_text(rule.config),
            description=rule.description,
        )
        with _store_errors("Saving rule"):
            self._s.add(m)
            await self._s.flush()
            await self._s.refresh(m)
        return _rule_to_domain(m)

    async def update(self, rule_id: int, changes: dict) -> AssignmentRule | None:
        with _store_errors(f"Updating rule {rule_id}"):
            m = await self._s.get(AssignmentRuleModel, rule_id)
            if m is None:
                return None
            for key in self._EDITABLE:
                if key not in changes:
                    continue
                value = changes[key]
                setattr(m, key, _config_to_text(value) if key == "config" else value)
            await self._s.flush()
        return _rule_to_domain(m)

    async def delete(self, rule_id: int) -> bool:
        with _store_errors(f"Deleting rule {rule_id}"):
            result = await self._s.execute(
                delete(AssignmentRuleModel).where(AssignmentRuleModel.id == rule_id)
            )
            await self._s.flush()
        return result.rowcount > 0


class SqlRoundRobinRepository(RoundRobinRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_cursor(self, rr_key: str) -> int | None:
        with _store_errors(f"Reading cursor {rr_key}"):
            result = await self._s.execute(
                select(RoundRobinCursorModel.last_agent_id)
                .where(RoundRobinCursorModel.rr_key == rr_key)
            )
        return result.scalar_one_or_none()

    async def advance_cursor(
        self, rr_key: str, pick: Callable[[int | None], int | None]
    ) -> int | None:
        with _store_errors(f"Advancing cursor {rr_key}"):
            # make sure the row exists so there is something to lock
            await self._s.execute(
                pg_insert(RoundRobinCursorModel)
                .values(rr_key=rr_key, last_agent_id=None)
                .on_conflict_do_nothing(index_elements=["rr_key"])
            )
            result = await self._s.execute(
                select(RoundRobinCursorModel)
                .where(RoundRobinCursorModel.rr_key == rr_key)
                .with_for_update()
            )
            m = result.scalar_one()
            chosen = pick(m.last_agent_id)
            if chosen is not None:
                m.last_agent_id = chosen
                await self._s.flush()
        return chosen


class SqlAssignmentRepository(AssignmentRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def save(self, assignment: Assignment) -> Assignment:
        m = AssignmentModel(
            ticket_id=assignment.ticket_id,
            rule_id=assignment.rule_id,
            rule_type=assignment.rule_type,
            target_type=assignment.target_type.value,
            target_id=assignment.target_id,
            reason=assignment.reason,
        )
        with _store_errors("Saving assignment"):
            self._s.add(m)
            await self._s.flush()
        assignment.id = m.id
        return assignment

    async def get_by_ticket(self, ticket_id: int) -> list[Assignment]:
        with _store_errors(f"Loading assignments for ticket {ticket_id}"):
            result = await self._s.execute(
                select(AssignmentModel)
                .where(AssignmentModel.ticket_id == ticket_id)
                .order_by(AssignmentModel.id)
            )
        return [_assignment_to_domain(m) for m in result.scalars()]


class SqlNotificationRepository(NotificationRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def save(self, notification: Notification) -> Notification:
        m = NotificationModel(
            type=notification.type.value,
            recipient_ids=list(notification.recipient_ids),
            title=notification.title,
            message=notification.message,
            link=notification.link,
            payload=dict(notification.metadata),
            ticket_id=notification.ticket_id,
            sla_type=notification.sla_type,
        )
        if notification.created_at is not None:
            m.created_at = notification.created_at
        # savepoint: a failed write must not poison the rest of the sweep
        with _store_errors("Saving notification"):
            async with self._s.begin_nested():
                self._s.add(m)
        notification.id = m.id
        return notification

    async def exists_since(
        self,
        notification_type: NotificationType,
        ticket_id: int,
        sla_type: str,
        since: datetime,
    ) -> bool:
        with _store_errors(f"Checking notifications for ticket {ticket_id}"):
            async with self._s.begin_nested():
                result = await self._s.execute(
                    select(NotificationModel.id)
                    .where(
                        NotificationModel.type == notification_type.value,
                        NotificationModel.ticket_id == ticket_id,
                        NotificationModel.sla_type == sla_type,
                        NotificationModel.created_at >= since,
                    )
                    .limit(1)
                )
        return result.scalar_one_or_none() is not None

    @asynccontextmanager
    async def ticket_lock(self, ticket_id: int) -> AsyncIterator[None]:
        # transaction-scoped: released when the caller commits or rolls back
        with _store_errors(f"Locking notifications for ticket {ticket_id}"):
            await self._s.execute(
                select(func.pg_advisory_xact_lock(SLA_NOTIFICATION_LOCK, ticket_id))
            )
        yield


class SqlAdminRepository(AdminRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_admin_ids(self) -> list[int]:
        with _store_errors("Loading administrators"):
            result = await self._s.execute(
                select(AdministratorModel.id)
                .where(AdministratorModel.role.in_(ADMIN_ROLES))
                .order_by(AdministratorModel.id)
            )
        return list(result.scalars())
