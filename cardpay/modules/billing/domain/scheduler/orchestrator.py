import asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import structlog

from cardpay.modules.billing.domain.billing.renewal_service import (
    RenewalService,
    SweepReport,
)
from cardpay.shared.core.config import Settings, get_settings

logger = structlog.get_logger()


class RenewalScheduler:
    """Runs the renewal sweep on a fixed interval, one sweep at a time."""

    def __init__(
        self, renewal_service: RenewalService, settings: Settings | None = None
    ):
        self.settings = settings or get_settings()
        self.renewal_service = renewal_service
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._in_flight = False
        self._sweep_task: asyncio.Task | None = None
        self._last_run_success: bool | None = None
        self._last_run_time: str | None = None
        self._last_summary: Dict[str, Any] | None = None
        self._skipped_ticks = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def renewal_sweep_job(self) -> Optional[SweepReport]:
        """One tick; a no-op while the previous sweep is still running."""
        if self._in_flight:
            self._skipped_ticks += 1
            logger.info("renewal_sweep_skipped_in_flight")
            return None

        self._in_flight = True
        # APScheduler cancels pending job futures on shutdown; the sweep itself
        # lives in its own task so cancelling the tick leaves it running.
        self._sweep_task = asyncio.create_task(self._run_sweep())
        return await asyncio.shield(self._sweep_task)

    async def _run_sweep(self) -> Optional[SweepReport]:
        try:
            report = await self.renewal_service.run_sweep()
            self._last_run_success = report.errors == 0
            self._last_summary = report.summary()
            return report
        except Exception as exc:
            self._last_run_success = False
            logger.error("renewal_sweep_failed", error=str(exc))
            return None
        finally:
            self._last_run_time = datetime.now(timezone.utc).isoformat()
            self._in_flight = False

    def start(self) -> None:
        """Schedules the interval sweep plus an early first run, then starts APScheduler."""
        self.scheduler.add_job(
            self.renewal_sweep_job,
            trigger=IntervalTrigger(seconds=self.settings.CHECK_INTERVAL_SECONDS),
            id="renewal_sweep",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.renewal_sweep_job,
            trigger=DateTrigger(
                run_date=datetime.now(timezone.utc)
                + timedelta(seconds=self.settings.INITIAL_SWEEP_DELAY_SECONDS)
            ),
            id="renewal_sweep_initial",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "renewal_scheduler_started",
            interval_seconds=self.settings.CHECK_INTERVAL_SECONDS,
            initial_delay_seconds=self.settings.INITIAL_SWEEP_DELAY_SECONDS,
        )

    def stop(self) -> None:
        if not self.scheduler.running:
            logger.debug("scheduler_stop_skipped_not_running")
            return
        self.scheduler.shutdown(wait=False)
        logger.info("renewal_scheduler_stopped")

    async def shutdown(self) -> None:
        """Stop ticking, then wait for a sweep already in progress to finish."""
        self.stop()
        task = self._sweep_task
        if task is not None and not task.done():
            logger.info("renewal_scheduler_waiting_for_sweep")
            await task

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.scheduler.running,
            "in_flight": self._in_flight,
            "last_run_success": self._last_run_success,
            "last_run_time": self._last_run_time,
            "last_summary": self._last_summary,
            "skipped_ticks": self._skipped_ticks,
            "jobs": [str(job.id) for job in self.scheduler.get_jobs()],
        }
