"""SLA endpoints — effective policies and on-demand sweep."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.adapters.persistence.repositories import SqlDepartmentRepository
from app.domain.policies.sla_thresholds import SLAPolicy, effective_policy
from app.infrastructure.api.dependencies import (
    get_department_repo,
    get_sweep_runner,
    sla_policy_from_settings,
)
from app.infrastructure.scheduler import SLASweepRunner

router = APIRouter(prefix="/sla", tags=["sla"])


@router.get("/policies")
async def list_policies(repo: SqlDepartmentRepository = Depends(get_department_repo)):
    """Global defaults plus the effective policy of every department."""
    defaults = sla_policy_from_settings()
    departments = []
    for dept in await repo.get_all():
        policy, config_valid = effective_policy(dept, defaults)
        departments.append({
            "id": dept.id,
            "name": dept.name,
            "configValid": config_valid,
            **_serialize_policy(policy),
        })
    return {"defaults": _serialize_policy(defaults), "departments": departments}


@router.post("/sweep")
async def run_sweep(runner: SLASweepRunner = Depends(get_sweep_runner)):
    """Run one sweep now; each ticket is committed on its own."""
    report = await runner.run()
    return {
        "tickets_checked": report.tickets_checked,
        "notifications_sent": report.notifications_sent,
        "failed_ticket_ids": report.failed_ticket_ids,
        "stopped_early": report.stopped_early,
    }


def _serialize_policy(policy: SLAPolicy) -> dict:
    return {
        "firstResponseTime": policy.first_response_hours,
        "resolutionTime": {p.value: hours for p, hours in policy.resolution_hours.items()},
    }
