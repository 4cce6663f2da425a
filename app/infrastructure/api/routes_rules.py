"""Assignment rule endpoints — CRUD + dry-run preview."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.persistence.database import get_session
from app.adapters.persistence.repositories import SqlAssignmentRuleRepository
from app.application.use_cases.assign_ticket import (
    AssignmentResult,
    PreviewAssignmentUseCase,
    RuleEvaluation,
)
from app.domain.entities.agent import Agent
from app.domain.entities.assignment_rule import AssignmentRule
from app.domain.entities.ticket import Ticket
from app.domain.exceptions import RuleConfigError
from app.domain.value_objects.enums import RuleType, TicketPriority
from app.domain.value_objects.rule_config import compile_rule
from app.infrastructure.api.dependencies import get_preview_uc, get_rule_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assignment-rules", tags=["assignment-rules"])


class RuleCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=200)
    rule_type: RuleType = Field(alias="ruleType")
    priority: int = 0
    enabled: bool = True
    config: dict[str, Any] | None = None
    description: str | None = None


class RuleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    enabled: bool | None = None
    priority: int | None = None
    config: dict[str, Any] | None = None
    description: str | None = None


class PreviewRequest(BaseModel):
    """Synthetic ticket used to dry-run the rule set."""

    model_config = ConfigDict(populate_by_name=True)

    subject: str | None = None
    customer_email: str | None = Field(default=None, alias="customerEmail")
    customer_name: str | None = Field(default=None, alias="customerName")
    priority: TicketPriority = TicketPriority.MEDIUM
    category: str | None = None
    department_id: int | None = Field(default=None, alias="departmentId")
    product_model: str | None = Field(default=None, alias="productModel")


def _validate_config(rule: AssignmentRule) -> None:
    try:
        compile_rule(rule)
    except RuleConfigError as e:
        raise HTTPException(status_code=422, detail=e.message)


@router.get("")
async def list_rules(repo: SqlAssignmentRuleRepository = Depends(get_rule_repo)):
    """All rules in evaluation order."""
    rules = await repo.get_all()
    return {"total": len(rules), "rules": [_serialize_rule(r) for r in rules]}


@router.post("", status_code=201)
async def create_rule(
    body: RuleCreate,
    repo: SqlAssignmentRuleRepository = Depends(get_rule_repo),
    session: AsyncSession = Depends(get_session),
):
    rule = AssignmentRule(
        id=None,
        name=body.name,
        rule_type=body.rule_type.value,
        priority=body.priority,
        enabled=body.enabled,
        config=body.config,
        description=body.description,
    )
    _validate_config(rule)

    saved = await repo.save(rule)
    await session.commit()
    logger.info("Created %s rule %s (%s)", saved.rule_type, saved.id, saved.name)
    return _serialize_rule(saved)


@router.post("/preview")
async def preview_rules(
    body: PreviewRequest,
    uc: PreviewAssignmentUseCase = Depends(get_preview_uc),
):
    """Evaluate the rule set against a synthetic ticket. No cursor moves."""
    ticket = Ticket(
        id=None,
        subject=body.subject,
        customer_email=body.customer_email,
        customer_name=body.customer_name,
        priority=body.priority,
        category=body.category,
        department_id=body.department_id,
        product_model=body.product_model,
        created_at=datetime.now(timezone.utc),
    )
    result = await uc.execute(ticket)
    return _serialize_preview(result)


@router.patch("/{rule_id}")
async def update_rule(
    rule_id: int,
    body: RuleUpdate,
    repo: SqlAssignmentRuleRepository = Depends(get_rule_repo),
    session: AsyncSession = Depends(get_session),
):
    existing = await repo.get_by_id(rule_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Rule not found")

    changes = body.model_dump(exclude_unset=True)
    if "config" in changes:
        _validate_config(AssignmentRule(
            id=rule_id,
            name=existing.name,
            rule_type=existing.rule_type,
            config=changes["config"],
        ))

    updated = await repo.update(rule_id, changes)
    if updated is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    await session.commit()
    return _serialize_rule(updated)


@router.delete("/{rule_id}", status_code=204)
async def delete_rule(
    rule_id: int,
    repo: SqlAssignmentRuleRepository = Depends(get_rule_repo),
    session: AsyncSession = Depends(get_session),
):
    if not await repo.delete(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    await session.commit()
    return Response(status_code=204)


def _serialize_rule(r: AssignmentRule) -> dict:
    return {
        "id": r.id,
        "name": r.name,
        "rule_type": r.rule_type,
        "priority": r.priority,
        "enabled": r.enabled,
        "config": r.config,
        "description": r.description,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


def _serialize_agent(agent: Agent | None) -> dict | None:
    if agent is None:
        return None
    return {"id": agent.id, "name": agent.name}


def _serialize_target(e: RuleEvaluation) -> dict:
    # department targets carry no agent
    return {
        "targetType": e.target_type.value if e.target_type else None,
        "targetId": e.target_id,
    }


def _serialize_evaluation(e: RuleEvaluation) -> dict:
    return {
        "ruleName": e.rule_name,
        "ruleType": e.rule_type,
        "priority": e.priority,
        "matched": e.matched,
        "agent": _serialize_agent(e.agent),
        **_serialize_target(e),
    }


def _serialize_preview(result: AssignmentResult) -> dict:
    first = result.first_match
    return {
        "firstMatch": (
            {
                "ruleName": first.rule_name,
                "ruleType": first.rule_type,
                "agent": _serialize_agent(first.agent),
                **_serialize_target(first),
            }
            if first
            else None
        ),
        "results": [_serialize_evaluation(e) for e in result.evaluations],
    }
