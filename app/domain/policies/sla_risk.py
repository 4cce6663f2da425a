"""SLARiskPolicy — detect tickets inside the early-warning window of an SLA."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.domain.entities.ticket import Ticket
from app.domain.policies.sla_thresholds import SLAThresholds
from app.domain.value_objects.enums import SLAType


@dataclass(frozen=True)
class RiskFractions:
    """Share of the SLA that must still remain for the window to open."""

    first_response: float = 0.25
    resolution: float = 0.20


DEFAULT_RISK_FRACTIONS = RiskFractions()


@dataclass(frozen=True)
class SLARisk:
    ticket_id: int
    sla_type: SLAType
    sla_seconds: int
    time_remaining: int
    threshold_seconds: float


def _in_risk_window(sla_seconds: int, age_seconds: int, fraction: float) -> tuple[bool, int, float]:
    remaining = sla_seconds - age_seconds
    threshold = sla_seconds * fraction
    return 0 < remaining <= threshold, remaining, threshold


def assess_risks(
    ticket: Ticket,
    thresholds: SLAThresholds,
    now: datetime,
    fractions: RiskFractions = DEFAULT_RISK_FRACTIONS,
) -> list[SLARisk]:
    """Return the SLA risks currently active for a ticket.

    Rules:
      1. Only open / pending tickets are considered.
      2. First response is checked while no first response was recorded.
      3. Resolution is checked for every active ticket.
      4. A risk exists when ``0 < remaining <= sla * fraction``. Once the
         deadline has passed no risk is reported (breach is not handled here).

    Both risks are independent; a ticket may carry both at once.
    """
    if not ticket.is_active():
        return []

    age = ticket.age_seconds(now)
    risks: list[SLARisk] = []

    if ticket.awaiting_first_response():
        at_risk, remaining, threshold = _in_risk_window(
            thresholds.first_response_seconds, age, fractions.first_response
        )
        if at_risk:
            risks.append(SLARisk(
                ticket_id=ticket.id,
                sla_type=SLAType.FIRST_RESPONSE,
                sla_seconds=thresholds.first_response_seconds,
                time_remaining=remaining,
                threshold_seconds=threshold,
            ))

    at_risk, remaining, threshold = _in_risk_window(
        thresholds.resolution_seconds, age, fractions.resolution
    )
    if at_risk:
        risks.append(SLARisk(
            ticket_id=ticket.id,
            sla_type=SLAType.RESOLUTION,
            sla_seconds=thresholds.resolution_seconds,
            time_remaining=remaining,
            threshold_seconds=threshold,
        ))

    return risks
