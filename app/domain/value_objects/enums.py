"""Domain enums — pure Python, no external dependencies."""

from enum import Enum


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketStatus(str, Enum):
    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"

    @classmethod
    def active(cls) -> tuple["TicketStatus", ...]:
        """Statuses that count towards agent load and SLA monitoring."""
        return (cls.OPEN, cls.PENDING)


class RuleType(str, Enum):
    DIRECT_ASSIGNMENT = "direct_assignment"
    ROUND_ROBIN = "round_robin"
    LOAD_BASED = "load_based"
    SKILL_MATCH = "skill_match"
    MANUAL = "manual"


class TargetType(str, Enum):
    AGENT = "agent"
    DEPARTMENT = "department"


class ConditionOperator(str, Enum):
    CONTAINS = "contains"
    EQUALS = "equals"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"


class ConditionLogic(str, Enum):
    AND = "AND"
    OR = "OR"


class SLAType(str, Enum):
    FIRST_RESPONSE = "first_response"
    RESOLUTION = "resolution"


class NotificationType(str, Enum):
    SLA_RISK = "sla_risk"


class PresenceStatus(str, Enum):
    ONLINE = "online"
    AWAY = "away"
    BUSY = "busy"
    OFFLINE = "offline"
