"""Health check endpoint."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.persistence.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request, session: AsyncSession = Depends(get_session)):
    """Database connectivity and SLA sweep status."""
    try:
        await session.execute(text("SELECT 1"))
        db_status = "connected"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Health check: database unreachable: %s", e)
        db_status = f"error: {e}"

    scheduler = getattr(request.app.state, "sla_scheduler", None)
    if scheduler is None:
        sweep_status = "disabled"
    else:
        sweep_status = "running" if scheduler.running else "stopped"

    return {
        "status": "ok" if db_status == "connected" else "degraded",
        "database": db_status,
        "sla_sweep": sweep_status,
        "service": "Helpdesk Routing & SLA Engine",
    }
