"""
SLA Scheduler
=============

APScheduler wrapper running the SLA breach sweep in the background.
"""

from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caseflow.cases.application import ICaseEventPublisher
from caseflow.cases.infrastructure import SQLAlchemyCaseRepository
from caseflow.shared.infrastructure.logging import get_logger
from caseflow.sla.application import SLABreachSweepService

logger = get_logger(__name__)


def build_sweep_job(
    session_factory: async_sessionmaker[AsyncSession],
    publisher: ICaseEventPublisher
) -> Callable[[], Awaitable[int]]:
    """
    Sweep job: one transaction per run, events published after commit.
    """

    async def sla_sweep_job() -> int:
        async with session_factory() as session:
            events = await SLABreachSweepService(SQLAlchemyCaseRepository(session)).sweep()
            await session.commit()
        await publisher.publish(events)
        return len(events)

    return sla_sweep_job


class SLAScheduler:
    """
    Wrapper for APScheduler for background SLA sweeps.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_breach_sweep",
            name="SLA Breach Sweep",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("SLA scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
