"""Helpdesk routing engine — FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.adapters.persistence.database import async_session_factory, engine
from app.config import settings
from app.domain.exceptions import PersistenceError, TicketNotFoundError
from app.infrastructure.api.dependencies import build_sla_monitor
from app.infrastructure.api.routes_health import router as health_router
from app.infrastructure.api.routes_rules import router as rules_router
from app.infrastructure.api.routes_sla import router as sla_router
from app.infrastructure.api.routes_tickets import router as tickets_router
from app.infrastructure.scheduler import SLASweepScheduler

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        async with engine.begin():
            pass  # Connection pool warmed up
        logger.info("Database connection established")
    except Exception as e:
        logger.warning("Database not available on startup: %s", e)

    scheduler = None
    if settings.sla_sweep_enabled:
        scheduler = SLASweepScheduler(
            session_factory=async_session_factory,
            monitor_factory=build_sla_monitor,
            interval_seconds=settings.sla_sweep_interval_seconds,
        )
        scheduler.start()
    app.state.sla_scheduler = scheduler

    yield

    if scheduler is not None:
        await scheduler.stop()
    await engine.dispose()


async def _persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=503, content={"detail": exc.message})


async def _ticket_not_found_handler(request: Request, exc: TicketNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": exc.message})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Helpdesk Routing & SLA Engine",
        description="Rule-based ticket assignment and SLA risk monitoring",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS for the admin frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            settings.public_base_url,
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PersistenceError, _persistence_error_handler)
    app.add_exception_handler(TicketNotFoundError, _ticket_not_found_handler)

    # Register routers
    app.include_router(health_router, prefix="/api")
    app.include_router(rules_router, prefix="/api")
    app.include_router(sla_router, prefix="/api")
    app.include_router(tickets_router, prefix="/api")

    return app


app = create_app()
