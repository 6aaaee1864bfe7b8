"""Periodic housekeeping jobs: dedup clearing, daily rollover, protection reconcile."""

import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from smartsignal_engine.config.models import PipelineConfig
from smartsignal_engine.core.pipeline import SignalPipeline

logger = logging.getLogger(__name__)

DEDUP_JOB_ID = "clear_dedup"
ROLLOVER_JOB_ID = "daily_rollover"
RECONCILE_JOB_ID = "reconcile_protection"


class HousekeepingScheduler:
    """Registers the engine's periodic jobs on an asyncio scheduler.

    Must be started from inside a running event loop.
    """

    def __init__(
        self,
        pipeline: SignalPipeline,
        config: PipelineConfig,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.config = config
        self.scheduler = scheduler or AsyncIOScheduler()
        self._registered = False

    def register_jobs(self) -> None:
        if self._registered:
            return
        self.scheduler.add_job(
            self.clear_dedup,
            trigger=IntervalTrigger(minutes=self.config.dedup_clear_minutes),
            id=DEDUP_JOB_ID,
            replace_existing=True,
        )
        # Local midnight
        self.scheduler.add_job(
            self.rollover,
            trigger=CronTrigger(hour=0, minute=0),
            id=ROLLOVER_JOB_ID,
            replace_existing=True,
        )
        if self.config.reconcile_interval_minutes > 0:
            self.scheduler.add_job(
                self.reconcile,
                trigger=IntervalTrigger(minutes=self.config.reconcile_interval_minutes),
                id=RECONCILE_JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        self._registered = True

    def job_ids(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def start(self) -> None:
        self.register_jobs()
        self.scheduler.start()
        logger.info(f"⏰ Housekeeping scheduler started: {', '.join(self.job_ids())}")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    # job implementations ------------------------------------------------------

    def clear_dedup(self) -> int:
        cleared = self.pipeline.session.clear_dedup_cache()
        logger.info(f"🧹 Dedup cache cleared ({cleared} keys)")
        return cleared

    def rollover(self) -> None:
        self.pipeline.session.rollover_day()
        logger.info("📅 Daily counters reset")

    async def reconcile(self) -> dict[str, Any]:
        try:
            report = await self.pipeline.reconcile()
        except Exception as exc:
            logger.exception(f"Reconcile job failed: {exc}")
            return {"error": str(exc)}
        return {
            "checked": report.checked,
            "closed": report.closed,
            "adopted": report.adopted,
            "released": report.released,
            "stops_placed": report.stops_placed,
            "take_profits_placed": report.take_profits_placed,
            "errors": report.errors,
        }
