"""
Background jobs for article metadata enrichment and rating refresh.

Modules:
    fetcher: httpx + BeautifulSoup page metadata fetcher
    state_machine: Retry policy and attempt transitions (pure logic)
    ledger: Durable retry ledger (one attempt row per article)
    repository: Article store access and rating view refresh
    worker: One tick of the metadata enrichment job
    rating_refresher: One tick of the rating aggregate job
    scheduler: APScheduler host running both jobs without self-overlap

Architecture:
    Article creation (elsewhere) enqueues an attempt with
    EnrichmentLedger.create_attempt(). Every minute the metadata job reads
    the due attempts, fetches each page, stores the metadata on the
    article and records the outcome:

        PENDING --success--> SUCCESS
        PENDING --failure--> PENDING (retry after a fixed backoff)
        PENDING --failure--> FAILED  (after MAX_RETRIES failures)

    The rating job independently refreshes the average rating view.

Usage:
    from enrichment.scheduler import EnrichmentScheduler

    scheduler = EnrichmentScheduler.from_settings()
    scheduler.start()
    ...
    await scheduler.shutdown()
"""

__all__ = [
    "MetadataFetcher",
    "RetryPolicy",
    "EnrichmentLedger",
    "ArticleRepository",
    "MetadataWorker",
    "RatingViewRefresher",
    "EnrichmentScheduler",
]
