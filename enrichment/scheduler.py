import asyncio
import logging
from typing import Optional, Set
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from core.config import settings as default_settings
from core.database import create_engine, create_session_factory
from enrichment.fetcher import MetadataFetcher
from enrichment.ledger import EnrichmentLedger
from enrichment.rating_refresher import RatingViewRefresher
from enrichment.repository import ArticleRepository
from enrichment.state_machine import RetryPolicy
from enrichment.worker import MetadataWorker

logger = logging.getLogger(__name__)

METADATA_JOB_ID = "metadata_worker"
RATING_JOB_ID = "rating_view_refresher"


class EnrichmentScheduler:
    """
    Hosts the recurring background jobs.

    Each job runs on its own interval with max_instances=1: a tick that is
    due while the previous one of the same job is still running is skipped,
    never run in parallel. The two jobs are independent of each other.
    """

    def __init__(
        self,
        worker: MetadataWorker,
        refresher: RatingViewRefresher,
        enrichment_interval: Optional[float] = None,
        refresh_interval: Optional[float] = None,
        engine: Optional[AsyncEngine] = None,
        shutdown_timeout: Optional[float] = None
    ):
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.worker = worker
        self.refresher = refresher
        self.enrichment_interval = enrichment_interval or default_settings.ENRICHMENT_INTERVAL_SECONDS
        self.refresh_interval = refresh_interval or default_settings.RATING_REFRESH_INTERVAL_SECONDS
        self.engine = engine  # disposed on shutdown when we created it
        self.shutdown_timeout = shutdown_timeout or default_settings.SHUTDOWN_TIMEOUT_SECONDS
        self._inflight: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings=default_settings,
        session_factory: Optional[async_sessionmaker] = None
    ) -> "EnrichmentScheduler":
        """Wire ledger, repository, fetcher and jobs from configuration"""
        engine = None
        if session_factory is None:
            engine = create_engine(settings.DATABASE_URL)
            session_factory = create_session_factory(engine)

        policy = RetryPolicy.from_settings(settings)
        ledger = EnrichmentLedger(session_factory, policy)
        articles = ArticleRepository(session_factory, settings.RATING_VIEW_NAME)
        fetcher = MetadataFetcher(
            timeout=settings.FETCH_TIMEOUT_SECONDS,
            user_agent=settings.FETCH_USER_AGENT
        )

        return cls(
            worker=MetadataWorker(ledger, articles, fetcher, policy),
            refresher=RatingViewRefresher(articles),
            enrichment_interval=settings.ENRICHMENT_INTERVAL_SECONDS,
            refresh_interval=settings.RATING_REFRESH_INTERVAL_SECONDS,
            engine=engine,
            shutdown_timeout=settings.SHUTDOWN_TIMEOUT_SECONDS
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    @property
    def job_ids(self):
        return [job.id for job in self.scheduler.get_jobs()]

    async def run_metadata_job(self):
        """Job to enrich due articles"""
        await self._track(self.worker.run_once())

    async def run_rating_job(self):
        """Job to refresh the rating aggregate"""
        await self._track(self.refresher.run_once())

    async def _track(self, job):
        task = asyncio.current_task()
        self._inflight.add(task)
        try:
            return await job
        finally:
            self._inflight.discard(task)

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_metadata_job,
            trigger=IntervalTrigger(seconds=self.enrichment_interval),
            id=METADATA_JOB_ID,
            name="MetadataWorker",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.add_job(
            self.run_rating_job,
            trigger=IntervalTrigger(seconds=self.refresh_interval),
            id=RATING_JOB_ID,
            name="MaterializedViewRefresher",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.start()
        logger.info(
            f"Enrichment scheduler started (metadata every {self.enrichment_interval}s, "
            f"rating view every {self.refresh_interval}s)"
        )

    async def shutdown(self, timeout: Optional[float] = None):
        """
        Stop scheduling new ticks, give running ticks up to `timeout`
        seconds to finish, then cancel whatever is left.

        Every ledger write is a single-row statement, so a cancelled tick
        leaves its current attempt pending for the next run.
        """
        if self.scheduler.running:
            await self._stop_scheduler(self.shutdown_timeout if timeout is None else timeout)

        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None

        logger.info("Enrichment scheduler stopped")

    async def _stop_scheduler(self, timeout: float):
        self.scheduler.pause()

        pending = {task for task in self._inflight if not task.done()}
        if pending:
            logger.info(f"Waiting up to {timeout}s for {len(pending)} running job(s)")
            _, unfinished = await asyncio.wait(pending, timeout=timeout)
            for task in unfinished:
                task.cancel()
            if unfinished:
                logger.warning(f"Abandoned {len(unfinished)} job(s) still running at shutdown")
                await asyncio.gather(*unfinished, return_exceptions=True)

        # AsyncIOScheduler.shutdown only schedules the stop on the event loop
        self.scheduler.shutdown(wait=False)
        while self.scheduler.running:
            await asyncio.sleep(0)
