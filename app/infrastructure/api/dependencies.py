"""FastAPI dependency injection — wires adapters into use cases."""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.notifications.log_dispatcher import LogDispatcher
from app.adapters.notifications.webhook_dispatcher import WebhookDispatcher
from app.adapters.persistence.database import async_session_factory, get_session
from app.adapters.persistence.repositories import (
    SqlAdminRepository,
    SqlAgentRepository,
    SqlAssignmentRepository,
    SqlAssignmentRuleRepository,
    SqlDepartmentRepository,
    SqlNotificationRepository,
    SqlRoundRobinRepository,
    SqlTicketRepository,
)
from app.application.ports.notification_port import NotificationDispatcher
from app.application.use_cases.assign_ticket import (
    AssignTicketUseCase,
    PreviewAssignmentUseCase,
    RuleEngine,
)
from app.application.use_cases.monitor_sla import SLARiskMonitor
from app.application.use_cases.ticket_events import TicketEventHandler
from app.config import settings
from app.domain.policies.sla_risk import RiskFractions
from app.domain.policies.sla_thresholds import SLAPolicy
from app.domain.value_objects.enums import TicketPriority
from app.infrastructure.scheduler import SLASweepRunner

logger = logging.getLogger(__name__)

# Re-export session dependency
get_db_session = get_session

# Singleton adapters (stateless)
if settings.notification_webhook_url:
    _dispatcher: NotificationDispatcher = WebhookDispatcher()
    logger.info("Delivering notifications to webhook %s", settings.notification_webhook_url)
else:
    _dispatcher = LogDispatcher()


def sla_policy_from_settings() -> SLAPolicy:
    return SLAPolicy(
        first_response_hours=settings.sla_default_first_response_hours,
        resolution_hours={
            TicketPriority.HIGH: settings.sla_default_resolution_high_hours,
            TicketPriority.MEDIUM: settings.sla_default_resolution_medium_hours,
            TicketPriority.LOW: settings.sla_default_resolution_low_hours,
        },
    )


def build_rule_engine(session: AsyncSession) -> RuleEngine:
    return RuleEngine(
        rule_repo=SqlAssignmentRuleRepository(session),
        agent_repo=SqlAgentRepository(session),
        department_repo=SqlDepartmentRepository(session),
        rr_repo=SqlRoundRobinRepository(session),
    )


def build_sla_monitor(session: AsyncSession) -> SLARiskMonitor:
    return SLARiskMonitor(
        ticket_repo=SqlTicketRepository(session),
        department_repo=SqlDepartmentRepository(session),
        notification_repo=SqlNotificationRepository(session),
        dispatcher=_dispatcher,
        admin_repo=SqlAdminRepository(session),
        defaults=sla_policy_from_settings(),
        fractions=RiskFractions(
            first_response=settings.sla_first_response_risk_fraction,
            resolution=settings.sla_resolution_risk_fraction,
        ),
        dedup_window=timedelta(minutes=settings.sla_dedup_window_minutes),
        ticket_timeout=settings.sla_ticket_timeout_seconds,
    )


def get_rule_repo(session: AsyncSession = Depends(get_session)) -> SqlAssignmentRuleRepository:
    return SqlAssignmentRuleRepository(session)


def get_department_repo(session: AsyncSession = Depends(get_session)) -> SqlDepartmentRepository:
    return SqlDepartmentRepository(session)


def get_preview_uc(session: AsyncSession = Depends(get_session)) -> PreviewAssignmentUseCase:
    return PreviewAssignmentUseCase(engine=build_rule_engine(session))


def get_assign_ticket_uc(session: AsyncSession = Depends(get_session)) -> AssignTicketUseCase:
    return AssignTicketUseCase(
        engine=build_rule_engine(session),
        ticket_repo=SqlTicketRepository(session),
        assignment_repo=SqlAssignmentRepository(session),
    )


def get_sweep_runner() -> SLASweepRunner:
    return SLASweepRunner(async_session_factory, build_sla_monitor)


def get_ticket_event_handler(
    session: AsyncSession = Depends(get_session),
) -> TicketEventHandler:
    return TicketEventHandler(
        assign_ticket=AssignTicketUseCase(
            engine=build_rule_engine(session),
            ticket_repo=SqlTicketRepository(session),
            assignment_repo=SqlAssignmentRepository(session),
        ),
        monitor=build_sla_monitor(session),
        ticket_repo=SqlTicketRepository(session),
    )
