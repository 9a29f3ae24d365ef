import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from core.exceptions import IngestionException
from ingestion.runner import ImportOrchestrator

logger = logging.getLogger(__name__)


class RetrySweepScheduler:
    """Periodically re-imports failed records that are still under the attempt cap."""

    def __init__(
        self,
        orchestrator: ImportOrchestrator,
        interval_minutes: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ):
        self.orchestrator = orchestrator
        self.interval_minutes = interval_minutes or settings.RETRY_SWEEP_MINUTES
        self.max_attempts = max_attempts or settings.RETRY_SWEEP_MAX_ATTEMPTS
        self.scheduler = AsyncIOScheduler()

    async def run_retry_sweep(self):
        """Job to retry failed imports"""
        logger.info("Scheduler: Starting retry sweep")
        try:
            result = await self.orchestrator.retry_failed(max_attempts=self.max_attempts)
        except IngestionException as e:
            logger.error(f"Scheduler: Retry sweep failed - {e.message}")
            return None

        logger.info(
            f"Scheduler: Retry sweep done - {len(result.succeeded)} recovered, "
            f"{len(result.failed)} still failing"
        )
        return result

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_retry_sweep,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="retry_sweep",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info(f"Retry sweep scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Retry sweep scheduler stopped")
