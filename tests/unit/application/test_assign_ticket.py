"""Tests for RuleEngine / AssignTicketUseCase with in-memory fakes."""

from __future__ import annotations

import asyncio

import pytest

from app.application.strategies import AssignmentStrategy, build_strategies
from app.application.use_cases.assign_ticket import (
    AssignTicketUseCase,
    PreviewAssignmentUseCase,
    RuleEngine,
)
from app.domain.entities.assignment_rule import AssignmentRule
from app.domain.entities.department import Department
from app.domain.exceptions import PersistenceError, TicketNotFoundError
from app.domain.value_objects.enums import PresenceStatus, RuleType, TargetType
from tests.fakes import (
    FakeAgentRepo,
    FakeAssignmentRepo,
    FakeDepartmentRepo,
    FakeRRRepo,
    FakeRuleRepo,
    FakeTicketRepo,
    make_agent,
    make_ticket,
)

SUPPORT = Department(id=1, name="Support", sla_config=None)
BILLING = Department(id=2, name="Billing", sla_config=None)


def _rule(rid, rule_type, config=None, priority=0, enabled=True, name=None) -> AssignmentRule:
    return AssignmentRule(
        id=rid,
        name=name or f"{rule_type} #{rid}",
        rule_type=rule_type,
        priority=priority,
        enabled=enabled,
        config=config,
    )


REFUND_TO_BILLING = _rule(
    1,
    "direct_assignment",
    {
        "conditions": [{"field": "subject", "operator": "contains", "value": "Refund"}],
        "assignToType": "department",
        "assignTo": BILLING.id,
    },
    priority=0,
)


def _default_agents():
    return [make_agent(1), make_agent(2), make_agent(3)]


def _make_engine(rules, agents=None, rr_repo=None, rule_repo=None, strategies=None) -> RuleEngine:
    return RuleEngine(
        rule_repo=rule_repo or FakeRuleRepo(rules),
        agent_repo=FakeAgentRepo(_default_agents() if agents is None else agents),
        department_repo=FakeDepartmentRepo([SUPPORT, BILLING]),
        rr_repo=rr_repo or FakeRRRepo(),
        strategies=strategies,
    )


def _make_use_case(engine, tickets):
    ticket_repo = FakeTicketRepo(tickets)
    assignment_repo = FakeAssignmentRepo()
    uc = AssignTicketUseCase(engine=engine, ticket_repo=ticket_repo, assignment_repo=assignment_repo)
    return uc, ticket_repo, assignment_repo


# ─── First matching rule wins ────────────────────────────────────────


@pytest.mark.asyncio
async def test_direct_rule_routes_refund_to_billing():
    rules = [REFUND_TO_BILLING, _rule(2, "round_robin", {}, priority=1)]
    uc, tickets, history = _make_use_case(
        _make_engine(rules), [make_ticket(id=1, subject="Refund request")]
    )

    result = await uc.execute(1)

    assert result.assigned is True
    assert result.rule_id == 1
    assert result.target_type == TargetType.DEPARTMENT
    assert result.target_id == BILLING.id
    assert tickets.tickets[1].department_id == BILLING.id
    assert tickets.tickets[1].assignee_id is None
    assert [(a.rule_id, a.target_type, a.target_id) for a in history.assignments] == [
        (1, TargetType.DEPARTMENT, BILLING.id)
    ]


@pytest.mark.asyncio
async def test_non_matching_ticket_falls_through_to_round_robin():
    rules = [REFUND_TO_BILLING, _rule(2, "round_robin", {}, priority=1)]
    uc, tickets, _ = _make_use_case(_make_engine(rules), [make_ticket(id=1, subject="Login issue")])

    result = await uc.execute(1)

    assert result.rule_id == 2
    assert result.target_type == TargetType.AGENT
    assert result.target_id == 1
    assert tickets.tickets[1].assignee_id == 1
    assert [e.matched for e in result.evaluations] == [False, True]


@pytest.mark.asyncio
async def test_agent_assignment_moves_ticket_to_agent_department():
    agents = [make_agent(5, department_id=BILLING.id)]
    uc, tickets, _ = _make_use_case(
        _make_engine([_rule(1, "round_robin", {})], agents=agents),
        [make_ticket(id=1, department_id=None)],
    )

    await uc.execute(1)

    assert tickets.tickets[1].assignee_id == 5
    assert tickets.tickets[1].department_id == BILLING.id


@pytest.mark.asyncio
async def test_agent_without_department_keeps_ticket_department():
    agents = [make_agent(5, department_id=None)]
    uc, tickets, _ = _make_use_case(
        _make_engine([_rule(1, "round_robin", {})], agents=agents),
        [make_ticket(id=1, department_id=SUPPORT.id)],
    )

    await uc.execute(1)

    assert tickets.tickets[1].department_id == SUPPORT.id


@pytest.mark.asyncio
async def test_rules_evaluated_by_priority_then_id():
    rules = [
        _rule(5, "direct_assignment", {"assignTo": 3}, priority=2),
        _rule(9, "direct_assignment", {"assignTo": 2}, priority=1),
        _rule(4, "direct_assignment", {"assignTo": 1}, priority=1),
    ]
    result = await _make_engine(rules).evaluate(make_ticket())
    assert result.rule_id == 4
    assert result.target_id == 1


@pytest.mark.asyncio
async def test_disabled_rules_skipped():
    rules = [
        _rule(1, "direct_assignment", {"assignTo": 1}, enabled=False),
        _rule(2, "direct_assignment", {"assignTo": 2}, priority=5),
    ]
    result = await _make_engine(rules).evaluate(make_ticket())
    assert result.rule_id == 2


# ─── Round robin ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_round_robin_four_tickets_cycle():
    rr = FakeRRRepo()
    tickets = [make_ticket(id=i) for i in range(1, 5)]
    uc, _, _ = _make_use_case(_make_engine([_rule(7, "round_robin", {})], rr_repo=rr), tickets)

    assigned = [(await uc.execute(i)).target_id for i in range(1, 5)]

    assert assigned == [1, 2, 3, 1]
    assert rr.cursors == {"rule-7": 1}


@pytest.mark.asyncio
async def test_round_robin_cursor_is_per_rule():
    rr = FakeRRRepo()
    rules = [
        _rule(1, "round_robin", {"categories": ["billing"]}, priority=0),
        _rule(2, "round_robin", {}, priority=1),
    ]
    engine = _make_engine(rules, rr_repo=rr)

    await engine.evaluate(make_ticket(category="billing"))
    await engine.evaluate(make_ticket(category="billing"))
    result = await engine.evaluate(make_ticket(category="hardware"))

    assert result.rule_id == 2
    assert result.target_id == 1
    assert rr.cursors == {"rule-1": 2, "rule-2": 1}


@pytest.mark.asyncio
async def test_concurrent_round_robin_assigns_distinct_agents():
    engine = _make_engine([_rule(1, "round_robin", {})])
    results = await asyncio.gather(*(engine.evaluate(make_ticket(id=i)) for i in range(3)))
    assert sorted(r.target_id for r in results) == [1, 2, 3]


@pytest.mark.asyncio
async def test_round_robin_skips_inactive_and_other_departments():
    agents = [
        make_agent(1, is_active=False),
        make_agent(2, department_id=2),
        make_agent(3),
    ]
    engine = _make_engine([_rule(1, "round_robin", {"departmentId": 1})], agents=agents)
    result = await engine.evaluate(make_ticket())
    assert result.target_id == 3


@pytest.mark.asyncio
async def test_offline_agents_never_receive_tickets():
    agents = [
        make_agent(1, presence_status=PresenceStatus.OFFLINE),
        make_agent(2, presence_status=PresenceStatus.AWAY),
        make_agent(3),
    ]
    for rule_type in ("round_robin", "load_based"):
        engine = _make_engine([_rule(1, rule_type, {})], agents=agents)
        result = await engine.evaluate(make_ticket())
        assert result.target_id == 3, rule_type


@pytest.mark.asyncio
async def test_all_agents_offline_leaves_ticket_unassigned():
    agents = [make_agent(1, presence_status=PresenceStatus.OFFLINE)]
    result = await _make_engine([_rule(1, "load_based", {})], agents=agents).evaluate(make_ticket())
    assert result.assigned is False
    assert result.evaluations[0].reason == "No online agents"


@pytest.mark.asyncio
async def test_empty_pool_falls_through():
    rules = [
        _rule(1, "round_robin", {"departmentId": 99}, priority=0),
        _rule(2, "load_based", {}, priority=1),
    ]
    result = await _make_engine(rules).evaluate(make_ticket())
    assert result.rule_id == 2
    assert result.evaluations[0].reason == "No online agents in rotation"


@pytest.mark.asyncio
async def test_cursor_write_failure_propagates():
    engine = _make_engine([_rule(1, "round_robin", {})], rr_repo=FakeRRRepo(fail_on_advance=True))
    with pytest.raises(PersistenceError):
        await engine.evaluate(make_ticket())


# ─── Load / skill based ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_load_based_picks_least_loaded():
    agents = [
        make_agent(1, current_open_ticket_count=5),
        make_agent(2, current_open_ticket_count=1),
        make_agent(3, current_open_ticket_count=1),
    ]
    result = await _make_engine([_rule(1, "load_based", {})], agents=agents).evaluate(make_ticket())
    assert result.target_id == 2


@pytest.mark.asyncio
async def test_skill_match_requires_all_skills():
    agents = [
        make_agent(1, skills={"printers"}),
        make_agent(2, skills={"printers", "scanners"}, current_open_ticket_count=3),
        make_agent(3, skills={"printers", "scanners"}, current_open_ticket_count=1),
    ]
    rules = [_rule(1, "skill_match", {"requiredSkills": ["printers", "scanners"]})]
    result = await _make_engine(rules, agents=agents).evaluate(make_ticket())
    assert result.target_id == 3


@pytest.mark.asyncio
async def test_skill_match_without_skills_uses_ticket_category():
    agents = [make_agent(1, skills={"billing"}), make_agent(2, skills={"hardware"})]
    engine = _make_engine([_rule(1, "skill_match", {})], agents=agents)

    result = await engine.evaluate(make_ticket(category="hardware"))

    assert result.target_id == 2


@pytest.mark.asyncio
async def test_skill_match_without_skills_or_category_takes_any_agent():
    agents = [
        make_agent(1, skills={"billing"}, current_open_ticket_count=2),
        make_agent(2, skills={"hardware"}),
    ]
    engine = _make_engine([_rule(1, "skill_match", {})], agents=agents)

    result = await engine.evaluate(make_ticket(category=None))

    assert result.target_id == 2


@pytest.mark.asyncio
async def test_category_scope_limits_rule():
    rules = [
        _rule(1, "load_based", {"categories": ["billing"]}, priority=0),
        _rule(2, "direct_assignment", {"assignTo": 3}, priority=1),
    ]
    result = await _make_engine(rules).evaluate(make_ticket(category="hardware"))
    assert result.rule_id == 2
    assert result.evaluations[0].reason == "Conditions not met"


# ─── Direct targets ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_direct_to_inactive_agent_falls_through():
    agents = [make_agent(1, is_active=False), make_agent(2)]
    rules = [
        _rule(1, "direct_assignment", {"assignTo": 1}, priority=0),
        _rule(2, "direct_assignment", {"assignTo": 2}, priority=1),
    ]
    result = await _make_engine(rules, agents=agents).evaluate(make_ticket())
    assert result.rule_id == 2


@pytest.mark.asyncio
async def test_direct_to_offline_agent_falls_through():
    agents = [make_agent(1, presence_status=PresenceStatus.BUSY), make_agent(2)]
    rules = [
        _rule(1, "direct_assignment", {"assignTo": 1}, priority=0),
        _rule(2, "direct_assignment", {"assignTo": 2}, priority=1),
    ]
    result = await _make_engine(rules, agents=agents).evaluate(make_ticket())
    assert result.rule_id == 2


@pytest.mark.asyncio
async def test_direct_to_unknown_department_falls_through():
    rules = [
        _rule(1, "direct_assignment", {"assignToType": "department", "assignTo": 42}),
        _rule(2, "manual", {}, priority=1),
    ]
    result = await _make_engine(rules).evaluate(make_ticket())
    assert result.assigned is False
    assert result.evaluations[0].reason == "Department 42 not found"


# ─── Manual, invalid and failing rules ───────────────────────────────


@pytest.mark.asyncio
async def test_manual_rule_stops_evaluation():
    rules = [_rule(1, "manual", {}, priority=0), _rule(2, "load_based", {}, priority=1)]
    result = await _make_engine(rules).evaluate(make_ticket())
    assert result.assigned is False
    assert result.rule_id == 1
    assert len(result.evaluations) == 1


@pytest.mark.asyncio
async def test_malformed_conditions_rule_is_skipped():
    rules = [
        _rule(1, "direct_assignment", {"conditions": "subject=refund", "assignTo": 1}, priority=0),
        _rule(2, "direct_assignment", {"assignTo": 2}, priority=1),
    ]
    result = await _make_engine(rules).evaluate(make_ticket(subject="refund"))
    assert result.rule_id == 2
    assert result.evaluations[0].matched is False
    assert result.evaluations[0].reason.startswith("Invalid configuration")


@pytest.mark.asyncio
async def test_unknown_rule_type_is_skipped():
    rules = [_rule(1, "lottery", {}, priority=0), _rule(2, "load_based", {}, priority=1)]
    result = await _make_engine(rules).evaluate(make_ticket())
    assert result.rule_id == 2


class ExplodingStrategy(AssignmentStrategy):
    rule_type = RuleType.LOAD_BASED

    async def select(self, ticket, rule, snapshot, *, dry_run=False):
        raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_strategy_error_counts_as_no_match():
    strategies = build_strategies(FakeRRRepo())
    strategies[RuleType.LOAD_BASED] = ExplodingStrategy()
    rules = [_rule(1, "load_based", {}, priority=0), _rule(2, "direct_assignment", {"assignTo": 3}, priority=1)]

    result = await _make_engine(rules, strategies=strategies).evaluate(make_ticket())

    assert result.rule_id == 2
    assert result.evaluations[0].reason == "Rule evaluation failed"


@pytest.mark.asyncio
async def test_no_rules_leaves_ticket_unassigned():
    result = await _make_engine([]).evaluate(make_ticket())
    assert result.assigned is False
    assert result.reason == "No assignment rules configured"


@pytest.mark.asyncio
async def test_rule_store_failure_leaves_ticket_unassigned():
    engine = _make_engine([], rule_repo=FakeRuleRepo(fail=True))
    result = await engine.evaluate(make_ticket())
    assert result.assigned is False
    assert result.reason == "Assignment rules unavailable"


@pytest.mark.asyncio
async def test_no_match_leaves_ticket_unassigned():
    uc, tickets, history = _make_use_case(
        _make_engine([REFUND_TO_BILLING]), [make_ticket(id=1, subject="Login issue")]
    )
    result = await uc.execute(1)
    assert result.assigned is False
    assert tickets.tickets[1].assignee_id is None
    assert history.assignments == []


# ─── Use case guards ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_unknown_ticket_raises():
    uc, _, _ = _make_use_case(_make_engine([]), [])
    with pytest.raises(TicketNotFoundError):
        await uc.execute(404)


@pytest.mark.asyncio
async def test_already_assigned_ticket_untouched():
    rr = FakeRRRepo()
    uc, tickets, history = _make_use_case(
        _make_engine([_rule(1, "round_robin", {})], rr_repo=rr),
        [make_ticket(id=1, assignee_id=2)],
    )
    result = await uc.execute(1)
    assert result.assigned is False
    assert result.reason == "Already assigned"
    assert tickets.tickets[1].assignee_id == 2
    assert rr.cursors == {}
    assert history.assignments == []


# ─── Preview ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_preview_does_not_advance_cursor():
    rr = FakeRRRepo()
    preview = PreviewAssignmentUseCase(_make_engine([_rule(1, "round_robin", {})], rr_repo=rr))

    first = await preview.execute(make_ticket(id=None))
    second = await preview.execute(make_ticket(id=None))

    assert first.first_match.agent.id == second.first_match.agent.id == 1
    assert rr.cursors == {}


@pytest.mark.asyncio
async def test_preview_reports_every_evaluated_rule():
    rules = [REFUND_TO_BILLING, _rule(2, "load_based", {}, priority=1, name="Least loaded")]
    result = await PreviewAssignmentUseCase(_make_engine(rules)).execute(
        make_ticket(id=None, subject="Login issue")
    )
    assert [(e.rule_name, e.matched) for e in result.evaluations] == [
        (REFUND_TO_BILLING.name, False),
        ("Least loaded", True),
    ]
    assert result.first_match.rule_name == "Least loaded"
