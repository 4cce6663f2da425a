"""Typed rule configurations — one pydantic model per rule type.

Rule configs are stored as loosely-typed JSON blobs. They are validated once,
when rules are loaded, into one of the models below. A config that does not
validate disables its rule for that load instead of failing at evaluation time.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.domain.entities.assignment_rule import AssignmentRule
from app.domain.exceptions import RuleConfigError
from app.domain.value_objects.enums import RuleType, TargetType


class _RuleConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class Condition(_RuleConfigModel):
    """One clause. Left loosely typed: bad clauses evaluate to False."""

    field: str | None = None
    operator: str | None = None
    value: Any = None
    logic: str | None = "AND"


class DirectAssignmentConfig(_RuleConfigModel):
    conditions: list[Condition] = Field(default_factory=list)
    assign_to_type: TargetType = Field(default=TargetType.AGENT, alias="assignToType")
    assign_to: int = Field(alias="assignTo")


class ScopedConfig(_RuleConfigModel):
    """Optional scoping shared by the pool-based strategies."""

    department_id: int | None = Field(default=None, alias="departmentId")
    categories: list[str] | None = None

    def applies_to_category(self, category: str | None) -> bool:
        if not self.categories:
            return True
        if not category:
            return False
        wanted = {c.strip().lower() for c in self.categories}
        return category.strip().lower() in wanted


class RoundRobinConfig(ScopedConfig):
    pass


class LoadBasedConfig(ScopedConfig):
    pass


class SkillMatchConfig(ScopedConfig):
    required_skills: list[str] = Field(default_factory=list, alias="requiredSkills")


class ManualConfig(_RuleConfigModel):
    pass


RuleConfig = (
    DirectAssignmentConfig
    | RoundRobinConfig
    | LoadBasedConfig
    | SkillMatchConfig
    | ManualConfig
)

CONFIG_MODELS: dict[RuleType, type[_RuleConfigModel]] = {
    RuleType.DIRECT_ASSIGNMENT: DirectAssignmentConfig,
    RuleType.ROUND_ROBIN: RoundRobinConfig,
    RuleType.LOAD_BASED: LoadBasedConfig,
    RuleType.SKILL_MATCH: SkillMatchConfig,
    RuleType.MANUAL: ManualConfig,
}


@dataclass(frozen=True)
class CompiledRule:
    """A rule paired with its validated configuration."""

    rule: AssignmentRule
    rule_type: RuleType
    config: RuleConfig

    @property
    def id(self) -> int | None:
        return self.rule.id

    @property
    def name(self) -> str:
        return self.rule.name

    @property
    def priority(self) -> int:
        return self.rule.priority


def _decode_raw_config(raw: Any) -> dict:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, (str, bytes)):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise TypeError(f"config must be an object, got {type(raw).__name__}")
    return raw


def compile_rule(rule: AssignmentRule) -> CompiledRule:
    """Validate a rule's raw config into its typed model.

    Raises:
        RuleConfigError: unknown rule type, undecodable JSON, or a config
            that fails validation (e.g. ``conditions`` not a list, or a
            direct rule without ``assignTo``).
    """
    try:
        rule_type = RuleType(rule.rule_type)
    except ValueError:
        raise RuleConfigError(rule.id, f"unknown rule type {rule.rule_type!r}") from None

    try:
        payload = _decode_raw_config(rule.config)
        config = CONFIG_MODELS[rule_type].model_validate(payload)
    except (ValueError, TypeError, ValidationError) as e:
        raise RuleConfigError(rule.id, f"invalid {rule_type.value} config: {e}") from e

    return CompiledRule(rule=rule, rule_type=rule_type, config=config)
