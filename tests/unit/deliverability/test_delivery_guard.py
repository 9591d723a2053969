import pytest

from deliverability.domain.exceptions import (
    ProviderRejectedError,
    QuotaExceededError,
    QuotaUnavailable,
    RecipientSuppressedError,
)
from deliverability.domain.value_objects import Category, Channel, SuppressionSource

from doubles import T0


@pytest.mark.asyncio
async def test_send_dispatches_and_reports_quota(container, dispatcher):
    receipt = await container.guard.send("user-42", "A@Example.com", Channel.EMAIL, Category.BID_ALERT, {"body": "outbid"})
    assert receipt.recipient == "a@example.com"
    assert receipt.provider_message_id == "msg-1"
    assert receipt.rate_limit.remaining == 4
    assert dispatcher.calls == [("a@example.com", Channel.EMAIL, {"body": "outbid"})]


@pytest.mark.asyncio
async def test_suppressed_recipient_is_blocked_before_quota(container, dispatcher):
    await container.suppressions.suppress("a@example.com", Channel.EMAIL, "spam_report", SuppressionSource.SPAM)
    with pytest.raises(RecipientSuppressedError) as exc:
        await container.guard.send("user-42", "a@example.com", Channel.EMAIL, Category.MARKETING)
    assert exc.value.status_code == 403
    assert exc.value.details["reason"] == "spam_report"
    assert dispatcher.calls == []
    assert (await container.guard.status("user-42", Category.MARKETING)).remaining == 2


@pytest.mark.asyncio
async def test_quota_exhaustion_raises_and_records_abuse(container, clock, dispatcher):
    for _ in range(2):
        await container.guard.send("user-42", "a@example.com", Channel.EMAIL, Category.MARKETING)

    clock.advance(seconds=60)
    for _ in range(2):
        with pytest.raises(QuotaExceededError) as exc:
            await container.guard.send("user-42", "a@example.com", Channel.EMAIL, Category.MARKETING)

    details = exc.value.details
    assert exc.value.status_code == 429
    assert details["remaining"] == 0
    assert details["resetAt"] == T0 + 86400 * 1000
    assert details["retryAfter"] == 86400 - 60
    assert len(dispatcher.calls) == 2

    records = await container.abuse.list("user-42", Category.MARKETING)
    assert [r.attempt_count for r in records] == [2, 1]
    assert records[0].metadata["recipient"] == "a@example.com"


@pytest.mark.asyncio
async def test_urgent_categories_are_never_limited(container, store, dispatcher):
    store.available = False
    with pytest.raises(QuotaUnavailable):
        await container.guard.send("u", "+15550001", Channel.SMS, Category.BID_ALERT)

    store.available = True
    for _ in range(20):
        await container.guard.send("u", "+15550001", Channel.SMS, Category.TWO_FACTOR)
    assert len(dispatcher.calls) == 20


@pytest.mark.asyncio
async def test_provider_failure_maps_to_provider_rejected(container, dispatcher):
    dispatcher.fail_next(retryable=False)
    with pytest.raises(ProviderRejectedError) as exc:
        await container.guard.send("u", "a@example.com", Channel.EMAIL, Category.PURCHASE)
    assert exc.value.status_code == 502
    assert exc.value.details["retryable"] is False
