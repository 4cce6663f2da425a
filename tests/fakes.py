"""In-memory fakes implementing the application ports, shared by unit tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from app.application.ports.admin_repo import AdminRepository
from app.application.ports.agent_repo import AgentRepository
from app.application.ports.assignment_repo import AssignmentRepository
from app.application.ports.department_repo import DepartmentRepository
from app.application.ports.notification_port import NotificationDispatcher
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
from app.domain.value_objects.enums import PresenceStatus, TicketPriority, TicketStatus

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def make_ticket(**overrides) -> Ticket:
    data = dict(
        id=1,
        subject="Printer not working",
        customer_email="jane@example.com",
        customer_name="Jane Roe",
        priority=TicketPriority.MEDIUM,
        category="hardware",
        department_id=None,
        product_model="LX-200",
        created_at=T0,
    )
    data.update(overrides)
    return Ticket(**data)


def make_agent(aid: int, department_id: int | None = 1, **overrides) -> Agent:
    data = dict(
        id=aid,
        name=f"Agent {aid}",
        department_id=department_id,
        presence_status=PresenceStatus.ONLINE,
    )
    data.update(overrides)
    return Agent(**data)


# ─── Routing fakes ───────────────────────────────────────────────────


class FakeRuleRepo(AssignmentRuleRepository):
    def __init__(self, rules: list[AssignmentRule] | None = None, fail: bool = False):
        self._rules = {r.id: r for r in rules or []}
        self._fail = fail

    async def get_enabled(self):
        if self._fail:
            raise PersistenceError("rule store down")
        return [r for r in self._rules.values() if r.enabled]

    async def get_all(self):
        return sorted(self._rules.values(), key=AssignmentRule.sort_key)

    async def get_by_id(self, rule_id):
        return self._rules.get(rule_id)

    async def save(self, rule):
        rule.id = max(self._rules, default=0) + 1
        self._rules[rule.id] = rule
        return rule

    async def update(self, rule_id, changes):
        rule = self._rules.get(rule_id)
        if rule is None:
            return None
        for key, value in changes.items():
            setattr(rule, key, value)
        return rule

    async def delete(self, rule_id):
        return self._rules.pop(rule_id, None) is not None


class FakeAgentRepo(AgentRepository):
    def __init__(self, agents: list[Agent] | None = None):
        self._agents = {a.id: a for a in agents or []}

    async def save(self, agent):
        self._agents[agent.id] = agent
        return agent

    async def get_all(self):
        return list(self._agents.values())


class FakeDepartmentRepo(DepartmentRepository):
    def __init__(self, departments: list[Department] | None = None):
        self._departments = {d.id: d for d in departments or []}

    async def save(self, department):
        self._departments[department.id] = department
        return department

    async def get_by_id(self, department_id):
        return self._departments.get(department_id)

    async def get_all(self):
        return list(self._departments.values())


class FakeRRRepo(RoundRobinRepository):
    """Cursor store; a per-key lock stands in for the row lock."""

    def __init__(self, fail_on_advance: bool = False):
        self.cursors: dict[str, int | None] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._fail = fail_on_advance

    async def get_cursor(self, rr_key):
        return self.cursors.get(rr_key)

    async def advance_cursor(self, rr_key, pick):
        if self._fail:
            raise PersistenceError("cursor write failed")
        async with self._locks[rr_key]:
            chosen = pick(self.cursors.get(rr_key))
            if chosen is not None:
                self.cursors[rr_key] = chosen
            return chosen


class FakeTicketRepo(TicketRepository):
    def __init__(self, tickets: list[Ticket] | None = None):
        self.tickets: dict[int, Ticket] = {t.id: t for t in tickets or []}

    async def save(self, ticket):
        ticket.id = max(self.tickets, default=0) + 1
        self.tickets[ticket.id] = ticket
        return ticket

    async def get_by_id(self, ticket_id):
        return self.tickets.get(ticket_id)

    async def get_active(self):
        return [t for _, t in sorted(self.tickets.items()) if t.is_active()]

    async def update_routing(self, ticket):
        self.tickets[ticket.id] = ticket
        return ticket

    async def update_status(self, ticket_id, status: TicketStatus):
        ticket = self.tickets.get(ticket_id)
        if ticket is not None:
            ticket.status = status
        return ticket


class FakeAssignmentRepo(AssignmentRepository):
    def __init__(self):
        self.assignments: list[Assignment] = []

    async def save(self, assignment):
        assignment.id = len(self.assignments) + 1
        self.assignments.append(assignment)
        return assignment

    async def get_by_ticket(self, ticket_id):
        return [a for a in self.assignments if a.ticket_id == ticket_id]


# ─── Notification fakes ──────────────────────────────────────────────


class FakeNotificationRepo(NotificationRepository):
    def __init__(self):
        self.records: list[Notification] = []
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def save(self, notification):
        notification.id = len(self.records) + 1
        self.records.append(notification)
        return notification

    async def exists_since(self, notification_type, ticket_id, sla_type, since):
        return any(
            n.type == notification_type
            and n.ticket_id == ticket_id
            and n.sla_type == sla_type
            and n.created_at >= since
            for n in self.records
        )

    @asynccontextmanager
    async def ticket_lock(self, ticket_id):
        async with self._locks[ticket_id]:
            yield


class FakeDispatcher(NotificationDispatcher):
    """Records sent notifications; ``on_send`` runs inside ``send`` before recording."""

    def __init__(self, fail_for: set[int] | None = None, on_send=None):
        self.sent: list[Notification] = []
        self._fail_for = fail_for or set()
        self._on_send = on_send

    async def send(self, notification):
        if notification.ticket_id in self._fail_for:
            raise ConnectionError("webhook unreachable")
        if self._on_send is not None:
            await self._on_send(notification)
        self.sent.append(notification)


class FakeAdminRepo(AdminRepository):
    def __init__(self, admin_ids: list[int] | None = None):
        self._ids = admin_ids if admin_ids is not None else [900, 901]

    async def get_admin_ids(self):
        return list(self._ids)
