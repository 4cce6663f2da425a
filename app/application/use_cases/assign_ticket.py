"""Assignment rule engine — first matching rule wins.

Rules are evaluated in (priority ASC, id ASC) order. Each rule is checked for
applicability, then its strategy is asked for a target. The first concrete
target ends evaluation; a manual rule ends it without one. If nothing
matches, the ticket stays in the unassigned queue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.application.ports.agent_repo import AgentRepository
from app.application.ports.assignment_repo import AssignmentRepository
from app.application.ports.department_repo import DepartmentRepository
from app.application.ports.round_robin_repo import RoundRobinRepository
from app.application.ports.rule_repo import AssignmentRuleRepository
from app.application.ports.ticket_repo import TicketRepository
from app.application.strategies import (
    AssignmentStrategy,
    RoutingSnapshot,
    StrategyOutcome,
    build_strategies,
)
from app.domain.entities.agent import Agent
from app.domain.entities.assignment import Assignment
from app.domain.entities.assignment_rule import AssignmentRule
from app.domain.entities.ticket import Ticket
from app.domain.exceptions import PersistenceError, RuleConfigError, TicketNotFoundError
from app.domain.value_objects.enums import RuleType, TargetType
from app.domain.value_objects.rule_config import CompiledRule, compile_rule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedRule:
    """A rule as loaded for one attempt; ``compiled`` is None if its config is invalid."""

    rule: AssignmentRule
    compiled: CompiledRule | None
    error: str | None = None


@dataclass
class RuleEvaluation:
    rule_id: int | None
    rule_name: str
    rule_type: str
    priority: int
    matched: bool
    reason: str
    agent: Agent | None = None
    target_type: TargetType | None = None
    target_id: int | None = None


@dataclass
class AssignmentResult:
    """Outcome of one assignment attempt (or preview)."""

    ticket_id: int | None
    assigned: bool
    reason: str
    rule_id: int | None = None
    rule_name: str | None = None
    rule_type: str | None = None
    target_type: TargetType | None = None
    target_id: int | None = None
    agent: Agent | None = None
    evaluations: list[RuleEvaluation] = field(default_factory=list)

    @property
    def first_match(self) -> RuleEvaluation | None:
        return next((e for e in self.evaluations if e.matched), None)


class RuleEngine:
    """Evaluates the enabled rule set against a ticket."""

    def __init__(
        self,
        rule_repo: AssignmentRuleRepository,
        agent_repo: AgentRepository,
        department_repo: DepartmentRepository,
        rr_repo: RoundRobinRepository,
        strategies: dict[RuleType, AssignmentStrategy] | None = None,
    ):
        self._rules = rule_repo
        self._agents = agent_repo
        self._departments = department_repo
        self._strategies = strategies or build_strategies(rr_repo)

    async def load_rules(self) -> list[LoadedRule]:
        """Load enabled rules in evaluation order, validating each config once."""
        rules = await self._rules.get_enabled()
        loaded = []
        for rule in sorted(rules, key=AssignmentRule.sort_key):
            try:
                loaded.append(LoadedRule(rule=rule, compiled=compile_rule(rule)))
            except RuleConfigError as e:
                logger.warning("Skipping rule %s (%s): %s", rule.id, rule.name, e.message)
                loaded.append(LoadedRule(rule=rule, compiled=None, error=e.message))
        return loaded

    async def load_snapshot(self) -> RoutingSnapshot:
        agents = await self._agents.get_all()
        departments = await self._departments.get_all()
        return RoutingSnapshot(
            agents=tuple(agents),
            departments={d.id: d for d in departments},
        )

    async def evaluate(self, ticket: Ticket, *, dry_run: bool = False) -> AssignmentResult:
        """Run the rule set. With ``dry_run`` no cursor is advanced.

        A PersistenceError raised by a strategy (cursor write) propagates.
        Any other strategy failure counts as the rule declining.
        """
        try:
            rules = await self.load_rules()
            snapshot = await self.load_snapshot()
        except PersistenceError as e:
            logger.warning("Assignment rules unavailable, ticket %s left unassigned: %s", ticket.id, e)
            return AssignmentResult(
                ticket_id=ticket.id, assigned=False, reason="Assignment rules unavailable"
            )

        if not rules:
            return AssignmentResult(
                ticket_id=ticket.id, assigned=False, reason="No assignment rules configured"
            )

        evaluations: list[RuleEvaluation] = []
        for loaded in rules:
            rule = loaded.rule
            outcome = await self._evaluate_rule(ticket, loaded, snapshot, dry_run)
            evaluations.append(RuleEvaluation(
                rule_id=rule.id,
                rule_name=rule.name,
                rule_type=rule.rule_type,
                priority=rule.priority,
                matched=outcome.matched,
                reason=outcome.reason,
                agent=outcome.agent,
                target_type=outcome.target_type,
                target_id=outcome.target_id,
            ))

            if outcome.matched:
                logger.info(
                    "Ticket %s matched rule %s (%s): %s",
                    ticket.id, rule.id, rule.rule_type, outcome.reason,
                )
                return AssignmentResult(
                    ticket_id=ticket.id,
                    assigned=True,
                    reason=outcome.reason,
                    rule_id=rule.id,
                    rule_name=rule.name,
                    rule_type=rule.rule_type,
                    target_type=outcome.target_type,
                    target_id=outcome.target_id,
                    agent=outcome.agent,
                    evaluations=evaluations,
                )
            if outcome.stop:
                logger.info("Ticket %s stopped at manual rule %s", ticket.id, rule.id)
                return AssignmentResult(
                    ticket_id=ticket.id,
                    assigned=False,
                    reason=outcome.reason,
                    rule_id=rule.id,
                    rule_name=rule.name,
                    rule_type=rule.rule_type,
                    evaluations=evaluations,
                )

        return AssignmentResult(
            ticket_id=ticket.id,
            assigned=False,
            reason="No matching rule found an available target",
            evaluations=evaluations,
        )

    async def _evaluate_rule(
        self,
        ticket: Ticket,
        loaded: LoadedRule,
        snapshot: RoutingSnapshot,
        dry_run: bool,
    ) -> StrategyOutcome:
        if loaded.compiled is None:
            return StrategyOutcome.no_match(f"Invalid configuration: {loaded.error}")

        rule = loaded.compiled
        strategy = self._strategies.get(rule.rule_type)
        if strategy is None:
            logger.warning("No strategy registered for rule type %s", rule.rule_type.value)
            return StrategyOutcome.no_match("Unsupported rule type")

        try:
            if not strategy.applies_to(ticket, rule):
                return StrategyOutcome.no_match("Conditions not met")
            return await strategy.select(ticket, rule, snapshot, dry_run=dry_run)
        except PersistenceError:
            raise
        except Exception:
            logger.exception("Rule %s failed for ticket %s, treating as no match", rule.id, ticket.id)
            return StrategyOutcome.no_match("Rule evaluation failed")


class AssignTicketUseCase:
    """Assign a stored ticket and persist the decision."""

    def __init__(
        self,
        engine: RuleEngine,
        ticket_repo: TicketRepository,
        assignment_repo: AssignmentRepository,
    ):
        self._engine = engine
        self._tickets = ticket_repo
        self._assignments = assignment_repo

    async def execute(self, ticket_id: int) -> AssignmentResult:
        """Evaluate rules for a ticket and apply the winning target.

        Raises:
            TicketNotFoundError: unknown ticket id.
            PersistenceError: the cursor, ticket or history write failed.
        """
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)

        if ticket.is_assigned():
            return AssignmentResult(
                ticket_id=ticket.id,
                assigned=False,
                reason="Already assigned",
                target_type=TargetType.AGENT,
                target_id=ticket.assignee_id,
            )

        result = await self._engine.evaluate(ticket)
        if not result.assigned:
            logger.info("Ticket %s left unassigned: %s", ticket.id, result.reason)
            return result

        if result.target_type == TargetType.AGENT:
            ticket.assignee_id = result.target_id
            # the ticket follows its agent into the agent's department
            if result.agent is not None and result.agent.department_id is not None:
                ticket.department_id = result.agent.department_id
        else:
            ticket.department_id = result.target_id
        await self._tickets.update_routing(ticket)

        await self._assignments.save(Assignment(
            id=None,
            ticket_id=ticket.id,
            rule_id=result.rule_id,
            rule_type=result.rule_type,
            target_type=result.target_type,
            target_id=result.target_id,
            reason=result.reason,
        ))

        logger.info(
            "Ticket %s → %s %s (rule %s)",
            ticket.id, result.target_type.value, result.target_id, result.rule_name,
        )
        return result


class PreviewAssignmentUseCase:
    """Run the engine against a synthetic ticket without side effects."""

    def __init__(self, engine: RuleEngine):
        self._engine = engine

    async def execute(self, ticket: Ticket) -> AssignmentResult:
        return await self._engine.evaluate(ticket, dry_run=True)
