import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock
from enrichment.scheduler import EnrichmentScheduler, METADATA_JOB_ID, RATING_JOB_ID


class RecordingJob:
    """Job stand-in that records how its runs overlap"""

    def __init__(self, delay: float):
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.runs = []
        self.cancelled = False

    async def run_once(self):
        loop = asyncio.get_running_loop()
        started = loop.time()
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        finally:
            self.active -= 1
        self.runs.append((started, loop.time()))


async def wait_until(predicate, timeout: float = 2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)


@pytest.mark.asyncio
async def test_scheduler_initialization():
    scheduler = EnrichmentScheduler(worker=AsyncMock(), refresher=AsyncMock(), enrichment_interval=60, refresh_interval=120)
    assert scheduler.scheduler is not None
    assert scheduler.running is False

    scheduler.start()
    try:
        assert scheduler.running is True
        assert set(scheduler.job_ids) == {METADATA_JOB_ID, RATING_JOB_ID}
        job = scheduler.scheduler.get_job(METADATA_JOB_ID)
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.trigger.interval.total_seconds() == 60
    finally:
        await scheduler.shutdown(timeout=1)

    assert scheduler.running is False


@pytest.mark.asyncio
async def test_scheduler_job_execution():
    worker = AsyncMock()
    refresher = AsyncMock()
    scheduler = EnrichmentScheduler(worker=worker, refresher=refresher)

    await scheduler.run_metadata_job()
    await scheduler.run_rating_job()

    worker.run_once.assert_awaited_once()
    refresher.run_once.assert_awaited_once()


@pytest.mark.asyncio
async def test_slow_tick_is_never_overlapped_by_itself():
    worker = RecordingJob(delay=0.35)
    refresher = RecordingJob(delay=0.01)
    scheduler = EnrichmentScheduler(worker=worker, refresher=refresher, enrichment_interval=0.1, refresh_interval=0.1)

    scheduler.start()
    await asyncio.sleep(1.3)
    await scheduler.shutdown(timeout=1)

    assert worker.max_active == 1
    assert len(worker.runs) >= 2
    for previous, following in zip(worker.runs, worker.runs[1:]):
        assert following[0] >= previous[1]


@pytest.mark.asyncio
async def test_jobs_run_independently():
    worker = RecordingJob(delay=0.5)
    refresher = RecordingJob(delay=0.01)
    scheduler = EnrichmentScheduler(worker=worker, refresher=refresher, enrichment_interval=0.1, refresh_interval=0.1)

    scheduler.start()
    await wait_until(lambda: worker.active == 1)
    busy_since = asyncio.get_running_loop().time()
    await asyncio.sleep(0.3)
    await scheduler.shutdown(timeout=1)

    refreshes_while_busy = [run for run in refresher.runs if run[0] >= busy_since]
    assert len(refreshes_while_busy) >= 1


@pytest.mark.asyncio
async def test_shutdown_lets_running_tick_finish():
    worker = RecordingJob(delay=0.3)
    scheduler = EnrichmentScheduler(worker=worker, refresher=AsyncMock(), enrichment_interval=0.05, refresh_interval=60)

    scheduler.start()
    await wait_until(lambda: worker.active == 1)
    await scheduler.shutdown(timeout=2)

    assert worker.active == 0
    assert len(worker.runs) == 1
    assert worker.cancelled is False
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_shutdown_abandons_tick_after_timeout():
    worker = RecordingJob(delay=10)
    scheduler = EnrichmentScheduler(worker=worker, refresher=AsyncMock(), enrichment_interval=0.05, refresh_interval=60)

    scheduler.start()
    await wait_until(lambda: worker.active == 1)
    started = asyncio.get_running_loop().time()
    await scheduler.shutdown(timeout=0.1)

    assert asyncio.get_running_loop().time() - started < 2
    assert worker.cancelled is True
    assert worker.runs == []
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_from_settings_wires_jobs():
    settings = MagicMock(
        MAX_RETRIES=4,
        RETRY_BACKOFF_SECONDS=120,
        RATING_VIEW_NAME="article_average_ratings",
        FETCH_TIMEOUT_SECONDS=5,
        FETCH_USER_AGENT="TestAgent/1.0",
        ENRICHMENT_INTERVAL_SECONDS=30,
        RATING_REFRESH_INTERVAL_SECONDS=90,
        SHUTDOWN_TIMEOUT_SECONDS=7,
    )

    scheduler = EnrichmentScheduler.from_settings(settings, session_factory=MagicMock())

    assert scheduler.enrichment_interval == 30
    assert scheduler.refresh_interval == 90
    assert scheduler.shutdown_timeout == 7
    assert scheduler.engine is None
    assert scheduler.worker.policy.max_retries == 4
    assert scheduler.worker.fetcher.user_agent == "TestAgent/1.0"
    assert scheduler.refresher.articles.rating_view_name == "article_average_ratings"


@pytest.mark.asyncio
async def test_shutdown_returns_with_scheduler_stopped_before_engine_disposal():
    engine = AsyncMock()
    running_at_dispose = []
    engine.dispose.side_effect = lambda: running_at_dispose.append(scheduler.running)
    scheduler = EnrichmentScheduler(worker=AsyncMock(), refresher=AsyncMock(), engine=engine)

    scheduler.start()
    await scheduler.shutdown(timeout=1)

    assert scheduler.running is False
    assert running_at_dispose == [False]
    assert scheduler.engine is None


@pytest.mark.asyncio
async def test_shutdown_disposes_engine_when_never_started():
    engine = AsyncMock()
    scheduler = EnrichmentScheduler(worker=AsyncMock(), refresher=AsyncMock(), engine=engine)

    await scheduler.shutdown()
    await scheduler.shutdown()

    engine.dispose.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_uses_configured_timeout():
    worker = RecordingJob(delay=10)
    scheduler = EnrichmentScheduler(
        worker=worker,
        refresher=AsyncMock(),
        enrichment_interval=0.05,
        refresh_interval=60,
        shutdown_timeout=0.1
    )

    scheduler.start()
    await wait_until(lambda: worker.active == 1)
    started = asyncio.get_running_loop().time()
    await scheduler.shutdown()

    assert asyncio.get_running_loop().time() - started < 2
    assert worker.cancelled is True
