"""Periodic SLA sweep running as a background asyncio task."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.application.use_cases.monitor_sla import SLARiskMonitor, SweepReport
from app.domain.entities.department import Department
from app.domain.entities.notification import Notification
from app.domain.entities.ticket import Ticket

logger = logging.getLogger(__name__)


class SLASweepRunner:
    """One sweep in which every ticket is checked in its own session.

    Each ticket's notifications are committed as soon as its check ends, which
    also releases that ticket's notification lock. A check cut off by the
    per-ticket timeout may have left its connection mid-query, so that
    connection is invalidated instead of going back to the pool.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        monitor_factory: Callable[[AsyncSession], SLARiskMonitor],
    ):
        self._session_factory = session_factory
        self._monitor_factory = monitor_factory

    async def run(self, stop_event: asyncio.Event | None = None) -> SweepReport:
        async with self._session_factory() as session:
            monitor = self._monitor_factory(session)
            return await monitor.sweep(stop_event=stop_event, check=self._check_ticket)

    async def _check_ticket(
        self, ticket: Ticket, department: Department | None, now: datetime
    ) -> list[Notification]:
        async with self._session_factory() as session:
            try:
                sent = await self._monitor_factory(session).check_loaded(ticket, department, now)
                await session.commit()
            except asyncio.CancelledError:
                logger.warning("Discarding connection of interrupted SLA check for ticket %s", ticket.id)
                await session.invalidate()
                raise
        return sent


class SLASweepScheduler:
    """Runs an SLA sweep every ``interval_seconds``.

    ``stop()`` lets the current ticket finish, then ends the loop.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        monitor_factory: Callable[[AsyncSession], SLARiskMonitor],
        interval_seconds: float,
    ):
        self._runner = SLASweepRunner(session_factory, monitor_factory)
        self._interval = interval_seconds
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="sla-sweep")
        logger.info("SLA sweep scheduled every %ss", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop.set()
        await self._task
        self._task = None
        logger.info("SLA sweep stopped")

    async def run_once(self) -> SweepReport:
        return await self._runner.run(stop_event=self._stop)

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("SLA sweep failed")

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
