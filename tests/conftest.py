"""Pytest configuration and shared fixtures."""

import pytest

from app.domain.value_objects.enums import TicketPriority
from tests.fakes import make_agent, make_ticket


@pytest.fixture
def sample_ticket():
    return make_ticket(
        subject="Refund request for order 1042",
        customer_email="jane@vip.example.com",
        priority=TicketPriority.HIGH,
        category="billing",
    )


@pytest.fixture
def sample_agents():
    return [
        make_agent(1, skills={"billing", "english"}, current_open_ticket_count=3),
        make_agent(2, skills={"english"}, current_open_ticket_count=1, max_load=1),
        make_agent(3, department_id=2, skills={"billing"}, current_open_ticket_count=2),
    ]
