"""Ticket endpoints — the event triggers for routing and SLA checks."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.persistence.database import get_session
from app.application.use_cases.assign_ticket import AssignmentResult, AssignTicketUseCase
from app.application.use_cases.ticket_events import TicketEventHandler, TicketEventResult
from app.domain.entities.notification import Notification
from app.domain.entities.ticket import Ticket
from app.domain.value_objects.enums import TicketPriority, TicketStatus
from app.infrastructure.api.dependencies import get_assign_ticket_uc, get_ticket_event_handler

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject: str | None = Field(default=None, max_length=500)
    customer_email: str | None = Field(default=None, alias="customerEmail")
    customer_name: str | None = Field(default=None, alias="customerName")
    priority: TicketPriority = TicketPriority.MEDIUM
    category: str | None = None
    department_id: int | None = Field(default=None, alias="departmentId")
    product_model: str | None = Field(default=None, alias="productModel")


class StatusChange(BaseModel):
    status: TicketStatus


@router.post("", status_code=201)
async def create_ticket(
    body: TicketCreate,
    handler: TicketEventHandler = Depends(get_ticket_event_handler),
    session: AsyncSession = Depends(get_session),
):
    """Store a ticket, route it, and run its first SLA check."""
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
    result = await handler.on_ticket_created(ticket)
    await session.commit()
    return _serialize_event(result)


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: int,
    handler: TicketEventHandler = Depends(get_ticket_event_handler),
    session: AsyncSession = Depends(get_session),
):
    result = await handler.on_ticket_viewed(ticket_id)
    await session.commit()
    return _serialize_event(result)


@router.post("/{ticket_id}/assign")
async def assign_ticket(
    ticket_id: int,
    uc: AssignTicketUseCase = Depends(get_assign_ticket_uc),
    session: AsyncSession = Depends(get_session),
):
    result = await uc.execute(ticket_id)
    await session.commit()
    return _serialize_assignment(result)


@router.post("/{ticket_id}/status")
async def change_status(
    ticket_id: int,
    body: StatusChange,
    handler: TicketEventHandler = Depends(get_ticket_event_handler),
    session: AsyncSession = Depends(get_session),
):
    result = await handler.on_status_changed(ticket_id, body.status)
    await session.commit()
    return _serialize_event(result)


def _serialize_ticket(t: Ticket) -> dict:
    return {
        "id": t.id,
        "subject": t.subject,
        "customer_email": t.customer_email,
        "customer_name": t.customer_name,
        "priority": t.priority.value,
        "category": t.category,
        "department_id": t.department_id,
        "product_model": t.product_model,
        "assignee_id": t.assignee_id,
        "status": t.status.value,
        "first_response_at": t.first_response_at.isoformat() if t.first_response_at else None,
        "created_at": t.created_at.isoformat() if t.created_at else None,
    }


def _serialize_assignment(r: AssignmentResult) -> dict:
    return {
        "ticket_id": r.ticket_id,
        "assigned": r.assigned,
        "reason": r.reason,
        "rule_id": r.rule_id,
        "rule_name": r.rule_name,
        "rule_type": r.rule_type,
        "target_type": r.target_type.value if r.target_type else None,
        "target_id": r.target_id,
    }


def _serialize_notification(n: Notification) -> dict:
    return {
        "type": n.type.value,
        "recipient_ids": n.recipient_ids,
        "title": n.title,
        "message": n.message,
        "link": n.link,
        "metadata": n.metadata,
    }


def _serialize_event(result: TicketEventResult) -> dict:
    data = _serialize_ticket(result.ticket)
    data["assignment"] = _serialize_assignment(result.assignment) if result.assignment else None
    data["sla_notifications"] = [_serialize_notification(n) for n in result.notifications]
    return data
