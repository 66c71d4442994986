import logging
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from ingestion.aggregator import TaskAggregator

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    One interval job per registered source.

    Intervals come from the aggregator state; a change there reschedules the
    affected jobs in place.
    """

    def __init__(self, aggregator: TaskAggregator, scheduler: Optional[AsyncIOScheduler] = None):
        self.aggregator = aggregator
        self.scheduler = scheduler or AsyncIOScheduler()
        self.aggregator.state.subscribe(self.on_interval_change)

    @staticmethod
    def job_id(source: str) -> str:
        return f"sync_{source}"

    def _trigger(self, source: str) -> IntervalTrigger:
        return IntervalTrigger(minutes=self.aggregator.state.interval_for(source))

    async def run_sync_job(self, source: str):
        """Job to sync one source"""
        result = await self.aggregator.sync_source(source)
        if result.error:
            logger.warning(f"Scheduler: {source} sync failed - {result.error}")

    def start(self, run_immediately: bool = False):
        """Start the scheduler"""
        for source in self.aggregator.source_names:
            job_kwargs = {}
            if run_immediately:
                job_kwargs["next_run_time"] = datetime.now()
            self.scheduler.add_job(
                self.run_sync_job,
                trigger=self._trigger(source),
                args=[source],
                id=self.job_id(source),
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                **job_kwargs
            )
        self.scheduler.start()
        logger.info(f"Sync scheduler started for {len(self.aggregator.source_names)} sources")

    def add_drop_folder(self, watcher, seconds: int = 30):
        """Poll a drop folder alongside the source jobs"""
        self.scheduler.add_job(
            watcher.scan,
            trigger=IntervalTrigger(seconds=seconds),
            id="drop_folder_scan",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def on_interval_change(self, source: Optional[str]):
        """Reschedule one source's job, or all of them when the default changed"""
        sources = [source] if source else self.aggregator.source_names
        for name in sources:
            job_id = self.job_id(name)
            if self.scheduler.get_job(job_id) is None:
                continue
            self.scheduler.reschedule_job(job_id, trigger=self._trigger(name))
            logger.info(
                f"Rescheduled {name} every {self.aggregator.state.interval_for(name)} min"
            )

    async def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        await self.aggregator.drain()
        logger.info("Sync scheduler stopped")
