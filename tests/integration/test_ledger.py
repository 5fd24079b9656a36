"""
Tests for the retry ledger against a real database
"""

import pytest
import uuid
from datetime import timedelta
from sqlalchemy import select, func

from enrichment import state_machine
from enrichment.ledger import EnrichmentLedger
from models.article import Article
from models.base import AttemptStatus
from models.enrichment_attempt import EnrichmentAttempt


@pytest.fixture
def ledger(session_factory, policy, clock):
    return EnrichmentLedger(session_factory, policy=policy, clock=clock)


async def add_articles(session_factory, count):
    ids = []
    async with session_factory() as session:
        for i in range(count):
            article_id = uuid.uuid4()
            session.add(Article(id=article_id, url=f"https://example.com/{i}"))
            ids.append(article_id)
        await session.commit()
    return ids


@pytest.mark.asyncio
async def test_create_attempt_is_idempotent(ledger, article, db_session):
    first = await ledger.create_attempt(article.id, article.url)
    second = await ledger.create_attempt(article.id, "https://example.com/other")

    assert first.id == second.id
    assert second.url == article.url
    assert second.status == AttemptStatus.PENDING
    assert second.retry_count == 0
    assert second.next_attempt_at is None

    count = await db_session.scalar(select(func.count()).select_from(EnrichmentAttempt))
    assert count == 1


@pytest.mark.asyncio
async def test_list_eligible_predicate(ledger, session_factory, clock):
    past = clock.now - timedelta(minutes=1)
    future = clock.now + timedelta(minutes=1)
    cases = [
        # (status, retry_count, next_attempt_at, eligible)
        (AttemptStatus.PENDING, 0, None, True),
        (AttemptStatus.PENDING, 0, past, True),
        (AttemptStatus.PENDING, 0, clock.now, True),
        (AttemptStatus.PENDING, 0, future, False),
        (AttemptStatus.PENDING, 3, None, True),
        (AttemptStatus.PENDING, 3, future, False),
        (AttemptStatus.PENDING, 4, past, False),
        (AttemptStatus.SUCCESS, 0, None, False),
        (AttemptStatus.SUCCESS, 3, past, False),
        (AttemptStatus.FAILED, 3, None, False),
        (AttemptStatus.FAILED, 4, past, False),
    ]
    article_ids = await add_articles(session_factory, len(cases))

    expected = set()
    async with session_factory() as session:
        for article_id, (status, retry_count, next_attempt_at, eligible) in zip(article_ids, cases):
            session.add(EnrichmentAttempt(
                article_id=article_id,
                url="https://example.com",
                status=status,
                retry_count=retry_count,
                next_attempt_at=next_attempt_at,
                error_message="",
            ))
            if eligible:
                expected.add(article_id)
        await session.commit()

    eligible = await ledger.list_eligible()

    assert {attempt.article_id for attempt in eligible} == expected


@pytest.mark.asyncio
async def test_increment_retry_stamps_times(ledger, article, clock):
    attempt = await ledger.create_attempt(article.id, article.url)

    updated = await ledger.increment_retry(attempt.id, error_message="timeout")

    assert updated.retry_count == 1
    assert updated.last_attempt_at == clock.now
    assert updated.next_attempt_at == clock.now + timedelta(minutes=5)
    assert updated.error_message == "timeout"
    assert updated.status == AttemptStatus.PENDING


@pytest.mark.asyncio
async def test_set_status_stamps_last_attempt(ledger, article, clock):
    attempt = await ledger.create_attempt(article.id, article.url)

    updated = await ledger.set_status(attempt.id, AttemptStatus.SUCCESS, "")

    assert updated.status == AttemptStatus.SUCCESS
    assert updated.last_attempt_at == clock.now


@pytest.mark.asyncio
async def test_terminal_status_never_reverses(ledger, article):
    attempt = await ledger.create_attempt(article.id, article.url)
    await ledger.set_status(attempt.id, AttemptStatus.FAILED, "gave up")

    assert await ledger.set_status(attempt.id, AttemptStatus.SUCCESS, "") is None
    assert await ledger.increment_retry(attempt.id) is None

    current = await ledger.get_attempt(attempt.id)
    assert current.status == AttemptStatus.FAILED
    assert current.error_message == "gave up"
    assert current.retry_count == 0


@pytest.mark.asyncio
async def test_stale_transition_is_not_applied_twice(ledger, article, policy, clock):
    attempt = await ledger.create_attempt(article.id, article.url)
    transition = state_machine.fail(attempt, "down", clock.now, policy)

    first = await ledger.apply_transition(attempt, transition)
    second = await ledger.apply_transition(attempt, transition)

    assert first.retry_count == 1
    assert second is None
    current = await ledger.get_attempt(attempt.id)
    assert current.retry_count == 1


@pytest.mark.asyncio
async def test_get_attempt_for_missing_article(ledger):
    assert await ledger.get_attempt_for_article(uuid.uuid4()) is None
