"""Tests for the row → entity mappers of the SQL repositories."""

import logging

from app.adapters.persistence.models import AgentModel, TicketModel
from app.adapters.persistence.repositories import _agent_to_domain, _ticket_to_domain
from app.domain.value_objects.enums import PresenceStatus, TicketPriority, TicketStatus
from tests.fakes import T0


def _ticket_row(**overrides) -> TicketModel:
    data = dict(
        id=7,
        subject="Printer not working",
        customer_email="jane@example.com",
        customer_name="Jane Roe",
        priority="high",
        category="hardware",
        department_id=None,
        product_model=None,
        created_at=T0,
        assignee_id=None,
        status="open",
        first_response_at=None,
        first_response_time_seconds=None,
    )
    data.update(overrides)
    return TicketModel(**data)


def test_ticket_row_maps_enums():
    ticket = _ticket_to_domain(_ticket_row(priority="URGENT", status="pending"))
    assert ticket.priority == TicketPriority.URGENT
    assert ticket.status == TicketStatus.PENDING


def test_unknown_priority_falls_back_to_low(caplog):
    with caplog.at_level(logging.WARNING):
        ticket = _ticket_to_domain(_ticket_row(priority="normal"))
    assert ticket.priority == TicketPriority.LOW
    assert "unknown priority" in caplog.text


def test_missing_priority_falls_back_to_low():
    assert _ticket_to_domain(_ticket_row(priority=None)).priority == TicketPriority.LOW


def test_unknown_status_row_is_skipped(caplog):
    with caplog.at_level(logging.WARNING):
        assert _ticket_to_domain(_ticket_row(status="archived")) is None
    assert "unknown status" in caplog.text


def test_agent_presence_mapping():
    row = AgentModel(
        id=3, name="Ann", department_id=1, skills=["billing"],
        is_active=True, presence_status="Online", max_load=None,
    )
    agent = _agent_to_domain(row, open_count=2)
    assert agent.presence_status == PresenceStatus.ONLINE
    assert agent.current_open_ticket_count == 2
    assert agent.is_routable() is True


def test_unknown_presence_is_offline():
    row = AgentModel(
        id=3, name="Ann", department_id=1, skills=[],
        is_active=True, presence_status="invisible", max_load=None,
    )
    assert _agent_to_domain(row).presence_status == PresenceStatus.OFFLINE
