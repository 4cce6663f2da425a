"""Assignment strategies — one per rule type.

Every strategy takes a ticket, its rule's validated config and the routing
snapshot, and returns a StrategyOutcome. "No eligible target" is a normal
outcome, never an exception.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from app.application.ports.round_robin_repo import RoundRobinRepository
from app.domain.entities.agent import Agent
from app.domain.entities.department import Department
from app.domain.entities.ticket import Ticket
from app.domain.policies.conditions import evaluate_conditions
from app.domain.policies.load_balance import pick_least_loaded
from app.domain.policies.required_skills import SkillRequirement, filter_by_skills
from app.domain.policies.round_robin import pick_next
from app.domain.value_objects.enums import RuleType, TargetType
from app.domain.value_objects.rule_config import (
    CompiledRule,
    DirectAssignmentConfig,
    ScopedConfig,
    SkillMatchConfig,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutingSnapshot:
    """Agents and departments read once per engine invocation."""

    agents: tuple[Agent, ...] = ()
    departments: dict[int, Department] = field(default_factory=dict)

    def agent(self, agent_id: int) -> Agent | None:
        return next((a for a in self.agents if a.id == agent_id), None)

    def active_agents(self, department_id: int | None = None) -> list[Agent]:
        return [
            a for a in self.agents
            if a.is_routable() and (department_id is None or a.department_id == department_id)
        ]


@dataclass(frozen=True)
class StrategyOutcome:
    target_type: TargetType | None
    target_id: int | None
    reason: str
    agent: Agent | None = None
    # Manual rules end evaluation without a target.
    stop: bool = False

    @property
    def matched(self) -> bool:
        return self.target_id is not None

    @classmethod
    def no_match(cls, reason: str, stop: bool = False) -> "StrategyOutcome":
        return cls(target_type=None, target_id=None, reason=reason, stop=stop)

    @classmethod
    def for_agent(cls, agent: Agent, reason: str) -> "StrategyOutcome":
        return cls(target_type=TargetType.AGENT, target_id=agent.id, reason=reason, agent=agent)


class AssignmentStrategy(ABC):
    rule_type: RuleType

    def applies_to(self, ticket: Ticket, rule: CompiledRule) -> bool:
        """Whether the rule should be tried for this ticket at all."""
        config = rule.config
        if isinstance(config, ScopedConfig):
            return config.applies_to_category(ticket.category)
        return True

    @abstractmethod
    async def select(
        self,
        ticket: Ticket,
        rule: CompiledRule,
        snapshot: RoutingSnapshot,
        *,
        dry_run: bool = False,
    ) -> StrategyOutcome:
        ...

    @staticmethod
    def _pool(rule: CompiledRule, snapshot: RoutingSnapshot) -> list[Agent]:
        department_id = getattr(rule.config, "department_id", None)
        return snapshot.active_agents(department_id)


class DirectAssignmentStrategy(AssignmentStrategy):
    rule_type = RuleType.DIRECT_ASSIGNMENT

    def applies_to(self, ticket: Ticket, rule: CompiledRule) -> bool:
        config: DirectAssignmentConfig = rule.config
        return evaluate_conditions(config.conditions, ticket)

    async def select(self, ticket, rule, snapshot, *, dry_run=False):
        config: DirectAssignmentConfig = rule.config

        if config.assign_to_type == TargetType.DEPARTMENT:
            department = snapshot.departments.get(config.assign_to)
            if department is None:
                logger.warning(
                    "Rule %s targets unknown department %s", rule.id, config.assign_to
                )
                return StrategyOutcome.no_match(f"Department {config.assign_to} not found")
            return StrategyOutcome(
                target_type=TargetType.DEPARTMENT,
                target_id=department.id,
                reason=f"Direct → department {department.name}",
            )

        agent = snapshot.agent(config.assign_to)
        if agent is None or not agent.is_routable():
            logger.warning(
                "Rule %s targets missing, inactive or offline agent %s", rule.id, config.assign_to
            )
            return StrategyOutcome.no_match(f"Agent {config.assign_to} unavailable")
        return StrategyOutcome.for_agent(agent, f"Direct → agent {agent.name}")


class RoundRobinStrategy(AssignmentStrategy):
    rule_type = RuleType.ROUND_ROBIN

    def __init__(self, rr_repo: RoundRobinRepository):
        self._rr = rr_repo

    @staticmethod
    def cursor_key(rule: CompiledRule) -> str:
        return f"rule-{rule.id}"

    async def select(self, ticket, rule, snapshot, *, dry_run=False):
        pool = self._pool(rule, snapshot)
        if not pool:
            return StrategyOutcome.no_match("No online agents in rotation")

        key = self.cursor_key(rule)
        if dry_run:
            chosen = pick_next(pool, await self._rr.get_cursor(key))
        else:
            # atomic: the cursor row stays locked until the transaction ends
            chosen_id = await self._rr.advance_cursor(key, lambda last: pick_next(pool, last).id)
            chosen = next(a for a in pool if a.id == chosen_id)

        return StrategyOutcome.for_agent(chosen, f"Round robin → {chosen.name}")


class LoadBasedStrategy(AssignmentStrategy):
    rule_type = RuleType.LOAD_BASED

    async def select(self, ticket, rule, snapshot, *, dry_run=False):
        pool = self._pool(rule, snapshot)
        if not pool:
            return StrategyOutcome.no_match("No online agents")

        chosen = pick_least_loaded(pool)
        return StrategyOutcome.for_agent(
            chosen,
            f"Least loaded → {chosen.name} ({chosen.current_open_ticket_count} open)",
        )


class SkillMatchStrategy(AssignmentStrategy):
    rule_type = RuleType.SKILL_MATCH

    async def select(self, ticket, rule, snapshot, *, dry_run=False):
        config: SkillMatchConfig = rule.config
        requirement = SkillRequirement.of(config.required_skills)
        if not requirement.required_skills and ticket.category:
            # no explicit skills: the ticket's category is the skill to match
            requirement = SkillRequirement.of([ticket.category])

        eligible = filter_by_skills(self._pool(rule, snapshot), requirement)
        if not eligible:
            return StrategyOutcome.no_match(
                f"No online agent has skills {sorted(requirement.required_skills)}"
            )

        chosen = pick_least_loaded(eligible)
        return StrategyOutcome.for_agent(chosen, f"Skill match → {chosen.name}")


class ManualStrategy(AssignmentStrategy):
    rule_type = RuleType.MANUAL

    async def select(self, ticket, rule, snapshot, *, dry_run=False):
        return StrategyOutcome.no_match("Manual rule: left in unassigned queue", stop=True)


def build_strategies(rr_repo: RoundRobinRepository) -> dict[RuleType, AssignmentStrategy]:
    strategies: list[AssignmentStrategy] = [
        DirectAssignmentStrategy(),
        RoundRobinStrategy(rr_repo),
        LoadBasedStrategy(),
        SkillMatchStrategy(),
        ManualStrategy(),
    ]
    return {s.rule_type: s for s in strategies}
