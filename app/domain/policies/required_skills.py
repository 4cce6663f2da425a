"""RequiredSkillsPolicy — which agents can handle a skill-scoped ticket."""

from dataclasses import dataclass

from app.domain.entities.agent import Agent


@dataclass(frozen=True)
class SkillRequirement:
    """Skills an agent must have, all of them."""

    required_skills: frozenset[str]

    @classmethod
    def of(cls, skills: list[str] | None) -> "SkillRequirement":
        return cls(required_skills=frozenset(s.strip() for s in skills or [] if s.strip()))


def agent_satisfies(agent_skills: set[str], requirement: SkillRequirement) -> bool:
    """An agent qualifies when its skill set is a superset of the requirement."""
    return requirement.required_skills.issubset(agent_skills)


def filter_by_skills(agents: list[Agent], requirement: SkillRequirement) -> list[Agent]:
    return [a for a in agents if agent_satisfies(a.skills, requirement)]
