"""Tests for LoadBalancePolicy."""

import pytest

from app.domain.policies.load_balance import pick_least_loaded
from tests.fakes import make_agent


def test_picks_fewest_open_tickets():
    agents = [
        make_agent(1, current_open_ticket_count=4),
        make_agent(2, current_open_ticket_count=1),
        make_agent(3, current_open_ticket_count=2),
    ]
    assert pick_least_loaded(agents).id == 2


def test_tie_broken_by_lowest_id():
    agents = [
        make_agent(5, current_open_ticket_count=1),
        make_agent(3, current_open_ticket_count=1),
    ]
    assert pick_least_loaded(agents).id == 3


def test_agents_at_capacity_skipped():
    agents = [
        make_agent(1, current_open_ticket_count=2, max_load=2),
        make_agent(2, current_open_ticket_count=5),
    ]
    assert pick_least_loaded(agents).id == 2


def test_all_at_capacity_still_picks_one():
    agents = [
        make_agent(1, current_open_ticket_count=3, max_load=3),
        make_agent(2, current_open_ticket_count=2, max_load=2),
    ]
    assert pick_least_loaded(agents).id == 2


def test_empty_raises():
    with pytest.raises(ValueError):
        pick_least_loaded([])


def test_sample_pool_skips_full_agent(sample_agents):
    # agent 2 has the fewest tickets but is at max_load
    assert pick_least_loaded(sample_agents).id == 3
