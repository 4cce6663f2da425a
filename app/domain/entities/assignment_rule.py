"""AssignmentRule entity — a configured, prioritized routing policy."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class AssignmentRule:
    id: int | None
    name: str
    rule_type: str  # RuleType value; unknown types are kept so they can be reported
    priority: int = 0
    enabled: bool = True
    config: Any = field(default=None)  # raw blob, validated by rule_config.compile_rule
    description: str | None = None
    created_at: datetime | None = None

    def sort_key(self) -> tuple[int, int]:
        """Total evaluation order: priority ascending, then id ascending."""
        return (self.priority, self.id if self.id is not None else 0)
