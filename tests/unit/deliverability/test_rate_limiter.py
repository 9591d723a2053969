import asyncio

import pytest

from deliverability.application.services import RateLimiter
from deliverability.domain.entities import UNBOUNDED
from deliverability.domain.exceptions import QuotaUnavailable
from deliverability.domain.policies import CategoryPolicy, PolicyBook
from deliverability.domain.value_objects import Category, CategoryKind

from doubles import T0


def policies(**overrides) -> PolicyBook:
    book = {
        Category.BID_ALERT: CategoryPolicy(cap=5, window_seconds=3600),
        Category.MARKETING: CategoryPolicy(cap=2, window_seconds=86400),
        Category.TWO_FACTOR: CategoryPolicy(cap=-1, window_seconds=0, bypassable=True),
        Category.PURCHASE: CategoryPolicy(cap=-1, window_seconds=0, bypassable=True),
    }
    book.update(overrides)
    return PolicyBook(book)


@pytest.mark.asyncio
async def test_bid_alert_window_scenario(store, clock):
    limiter = RateLimiter(store, policies(), clock)

    remaining = []
    for _ in range(5):
        status = await limiter.check_and_consume("user-42", Category.BID_ALERT)
        assert status.allowed is True
        assert status.limit == 5
        remaining.append(status.remaining)
    assert remaining == [4, 3, 2, 1, 0]

    clock.advance(seconds=10)
    sixth = await limiter.check_and_consume("user-42", Category.BID_ALERT)
    assert sixth.allowed is False
    assert sixth.remaining == 0
    assert sixth.reset_at == T0 + 3600 * 1000


@pytest.mark.asyncio
async def test_admission_resumes_after_window(store, clock):
    limiter = RateLimiter(store, policies(), clock)
    for _ in range(2):
        assert (await limiter.check_and_consume("u1", Category.MARKETING)).allowed
    assert not (await limiter.check_and_consume("u1", Category.MARKETING)).allowed

    clock.advance(seconds=86400 + 1)
    status = await limiter.check_and_consume("u1", Category.MARKETING)
    assert status.allowed is True
    assert status.remaining == 1


@pytest.mark.asyncio
async def test_window_slides_one_entry_at_a_time(store, clock):
    limiter = RateLimiter(store, policies(), clock)
    await limiter.check_and_consume("u1", Category.MARKETING)
    clock.advance(seconds=3600)
    await limiter.check_and_consume("u1", Category.MARKETING)

    clock.advance(seconds=86400 - 3600 + 1)  # first entry has left, second has not
    assert (await limiter.check_and_consume("u1", Category.MARKETING)).allowed
    assert not (await limiter.check_and_consume("u1", Category.MARKETING)).allowed


@pytest.mark.asyncio
async def test_subjects_and_categories_are_independent(store, clock):
    limiter = RateLimiter(store, policies(), clock)
    for _ in range(2):
        await limiter.check_and_consume("u1", Category.MARKETING)
    assert (await limiter.check_and_consume("u2", Category.MARKETING)).allowed
    assert (await limiter.check_and_consume("u1", Category.BID_ALERT)).allowed


@pytest.mark.asyncio
async def test_bypassable_categories_admit_everything(store, clock):
    limiter = RateLimiter(store, policies(), clock)
    for _ in range(500):
        status = await limiter.check_and_consume("u1", Category.TWO_FACTOR)
        assert status.allowed
    assert status.limit == UNBOUNDED
    assert status.remaining == UNBOUNDED
    assert await store.scan("limit:") == []


@pytest.mark.asyncio
async def test_bypassable_categories_ignore_store_outage(store, clock):
    limiter = RateLimiter(store, policies(), clock)
    store.available = False
    assert (await limiter.check_and_consume("u1", Category.PURCHASE)).allowed


@pytest.mark.asyncio
async def test_capped_category_fails_closed_on_store_outage(store, clock):
    limiter = RateLimiter(store, policies(), clock)
    store.available = False
    with pytest.raises(QuotaUnavailable) as exc:
        await limiter.check_and_consume("u1", Category.BID_ALERT)
    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_racing_for_last_unit_admits_exactly_one(store, clock):
    limiter = RateLimiter(store, policies(**{Category.BID_ALERT: CategoryPolicy(cap=1, window_seconds=60)}), clock)
    results = await asyncio.gather(*(limiter.check_and_consume("u1", Category.BID_ALERT) for _ in range(25)))
    assert sum(1 for r in results if r.allowed) == 1
    assert sum(1 for r in results if not r.allowed) == 24


@pytest.mark.asyncio
async def test_peek_does_not_consume(store, clock):
    limiter = RateLimiter(store, policies(), clock)
    empty = await limiter.peek("u1", Category.MARKETING)
    assert empty.allowed and empty.remaining == 2 and empty.reset_at is None

    await limiter.check_and_consume("u1", Category.MARKETING)
    for _ in range(3):
        snapshot = await limiter.peek("u1", Category.MARKETING)
    assert snapshot.remaining == 1
    assert snapshot.reset_at == T0 + 86400 * 1000


def test_policy_book_requires_every_category():
    with pytest.raises(ValueError):
        PolicyBook({Category.BID_ALERT: CategoryPolicy(cap=5, window_seconds=3600)})


def test_default_limits_bypass_exactly_the_urgent_categories(settings):
    book = PolicyBook.from_settings(settings.category_limits)
    for category in Category:
        urgent = category.kind is CategoryKind.URGENT_TRANSACTIONAL
        assert book[category].bypassable is urgent
