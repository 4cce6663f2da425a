"""ConditionPolicy — evaluate rule conditions against a ticket snapshot."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from app.domain.entities.ticket import Ticket
from app.domain.value_objects.enums import ConditionLogic, ConditionOperator

# Condition field name → Ticket attribute. snake_case names are accepted too.
TICKET_FIELDS: dict[str, str] = {
    "subject": "subject",
    "customerEmail": "customer_email",
    "customerName": "customer_name",
    "priority": "priority",
    "category": "category",
    "departmentId": "department_id",
    "productModel": "product_model",
}
TICKET_FIELDS.update({attr: attr for attr in list(TICKET_FIELDS.values())})


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):  # str enums
        value = value.value
    return str(value)


def _as_number(value: str) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _clause_get(clause: Any, key: str) -> Any:
    if isinstance(clause, Mapping):
        return clause.get(key)
    return getattr(clause, key, None)


def evaluate_condition(clause: Any, ticket: Ticket) -> bool:
    """Evaluate a single clause. Never raises: anything malformed is False."""
    field_name = _clause_get(clause, "field")
    operator = _clause_get(clause, "operator")
    expected = _clause_get(clause, "value")

    attr = TICKET_FIELDS.get(field_name) if isinstance(field_name, str) else None
    if attr is None or expected is None:
        return False

    actual = _stringify(getattr(ticket, attr, None)).lower()
    wanted = _stringify(expected).lower()

    try:
        op = ConditionOperator(operator)
    except ValueError:
        return False

    if op == ConditionOperator.CONTAINS:
        return wanted in actual
    if op == ConditionOperator.EQUALS:
        return actual == wanted
    if op == ConditionOperator.STARTS_WITH:
        return actual.startswith(wanted)
    if op == ConditionOperator.ENDS_WITH:
        return actual.endswith(wanted)

    left, right = _as_number(actual), _as_number(wanted)
    if left is None or right is None:
        return False
    if op == ConditionOperator.GREATER_THAN:
        return left > right
    return left < right


def _logic_of(clause: Any) -> ConditionLogic:
    raw = _clause_get(clause, "logic")
    if isinstance(raw, str) and raw.strip().upper() == ConditionLogic.OR.value:
        return ConditionLogic.OR
    return ConditionLogic.AND


def evaluate_conditions(conditions: Iterable[Any], ticket: Ticket) -> bool:
    """Fold clauses left to right into a single match result.

    Each clause's ``logic`` describes how it joins the *next* clause, so
    ``[A(AND), B(OR), C]`` evaluates as ``(A AND B) OR C``. There is no
    operator precedence. The last clause's logic is unused.

    An empty list matches every ticket (catch-all rules).
    """
    clauses = list(conditions)
    if not clauses:
        return True

    result = evaluate_condition(clauses[0], ticket)
    for previous, clause in zip(clauses, clauses[1:]):
        current = evaluate_condition(clause, ticket)
        if _logic_of(previous) == ConditionLogic.OR:
            result = result or current
        else:
            result = result and current
    return result
