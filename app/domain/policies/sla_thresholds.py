"""SLAThresholdPolicy — effective first-response / resolution deadlines.

Global defaults apply unless the ticket's department carries an override:

    {"firstResponseTime": 2, "resolutionTime": {"high": 12, "low": 96}}

All values are hours. Urgent tickets use the ``high`` resolution time unless
``urgent`` is configured explicitly.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from app.domain.entities.department import Department
from app.domain.value_objects.enums import TicketPriority

logger = logging.getLogger(__name__)

HOUR = 60 * 60


@dataclass(frozen=True)
class SLAPolicy:
    """SLA budget in hours: one first-response value, resolution per priority."""

    first_response_hours: float
    resolution_hours: dict[TicketPriority, float] = field(default_factory=dict)

    def resolution_for(self, priority: TicketPriority) -> float:
        if priority in self.resolution_hours:
            return self.resolution_hours[priority]
        if priority == TicketPriority.URGENT and TicketPriority.HIGH in self.resolution_hours:
            return self.resolution_hours[TicketPriority.HIGH]
        return self.resolution_hours[TicketPriority.LOW]


DEFAULT_SLA_POLICY = SLAPolicy(
    first_response_hours=4,
    resolution_hours={
        TicketPriority.HIGH: 24,
        TicketPriority.MEDIUM: 48,
        TicketPriority.LOW: 72,
    },
)


@dataclass(frozen=True)
class SLAOverride:
    """Parsed department override; ``None`` / missing keys mean "use default"."""

    first_response_hours: float | None
    resolution_hours: dict[TicketPriority, float]


@dataclass(frozen=True)
class SLAThresholds:
    first_response_seconds: int
    resolution_seconds: int


def _positive_hours(value) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if value > 0 else None


def parse_sla_config(raw: str | None) -> SLAOverride | None:
    """Parse a department ``sla_config`` blob.

    Returns None when there is nothing configured.

    Raises:
        ValueError: if the text is not JSON or not a JSON object.
    """
    if raw is None or not raw.strip():
        return None

    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("SLA config must be a JSON object")

    resolution: dict[TicketPriority, float] = {}
    raw_resolution = data.get("resolutionTime")
    if isinstance(raw_resolution, dict):
        for key, hours in raw_resolution.items():
            try:
                priority = TicketPriority(str(key).lower())
            except ValueError:
                continue
            parsed = _positive_hours(hours)
            if parsed is not None:
                resolution[priority] = parsed

    return SLAOverride(
        first_response_hours=_positive_hours(data.get("firstResponseTime")),
        resolution_hours=resolution,
    )


def effective_policy(
    department: Department | None,
    defaults: SLAPolicy = DEFAULT_SLA_POLICY,
) -> tuple[SLAPolicy, bool]:
    """Merge a department's override onto the defaults.

    Returns:
        (policy, config_valid) — config_valid is False when the department's
        config was present but malformed and the defaults were used instead.
    """
    if department is None:
        return defaults, True

    try:
        override = parse_sla_config(department.sla_config)
    except ValueError as e:  # json.JSONDecodeError is a ValueError
        logger.warning(
            "Department %s has malformed SLA config, using defaults: %s",
            department.id, e,
        )
        return defaults, False

    if override is None:
        return defaults, True

    resolution = dict(defaults.resolution_hours)
    resolution.update(override.resolution_hours)
    if (
        TicketPriority.URGENT not in override.resolution_hours
        and TicketPriority.HIGH in override.resolution_hours
    ):
        # urgent follows the department's high value, not the global one
        resolution.pop(TicketPriority.URGENT, None)

    return (
        SLAPolicy(
            first_response_hours=override.first_response_hours or defaults.first_response_hours,
            resolution_hours=resolution,
        ),
        True,
    )


def resolve_thresholds(
    priority: TicketPriority,
    department: Department | None,
    defaults: SLAPolicy = DEFAULT_SLA_POLICY,
) -> SLAThresholds:
    """Pure function: effective SLA budgets in seconds for a ticket."""
    policy, _ = effective_policy(department, defaults)
    return SLAThresholds(
        first_response_seconds=int(policy.first_response_hours * HOUR),
        resolution_seconds=int(policy.resolution_for(priority) * HOUR),
    )
