"""Port interface for assignment rule persistence."""

from abc import ABC, abstractmethod

from app.domain.entities.assignment_rule import AssignmentRule


class AssignmentRuleRepository(ABC):
    @abstractmethod
    async def get_enabled(self) -> list[AssignmentRule]:
        """Enabled rules ordered by (priority ASC, id ASC)."""
        ...

    @abstractmethod
    async def get_all(self) -> list[AssignmentRule]:
        ...

    @abstractmethod
    async def get_by_id(self, rule_id: int) -> AssignmentRule | None:
        ...

    @abstractmethod
    async def save(self, rule: AssignmentRule) -> AssignmentRule:
        ...

    @abstractmethod
    async def update(self, rule_id: int, changes: dict) -> AssignmentRule | None:
        """Apply a partial update. Returns None if the rule does not exist."""
        ...

    @abstractmethod
    async def delete(self, rule_id: int) -> bool:
        ...
