"""Assignment entity — the result of routing a ticket through the rule engine."""

from dataclasses import dataclass
from datetime import datetime

from app.domain.value_objects.enums import TargetType


@dataclass
class Assignment:
    id: int | None
    ticket_id: int
    rule_id: int
    rule_type: str
    target_type: TargetType
    target_id: int
    reason: str | None = None
    assigned_at: datetime | None = None
