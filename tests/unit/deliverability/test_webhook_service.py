import pytest

from deliverability.domain.value_objects import Channel

from doubles import WEBHOOK_SECRET


def event(**overrides):
    base = {
        "recipientAddress": "a@example.com",
        "timestamp": 1_700_000_000,
        "eventKind": "bounce",
        "bounceSeverity": "hard",
        "reason": "no such user",
    }
    base.update(overrides)
    return base


def test_verify_token(container):
    assert container.webhooks.verify_token(WEBHOOK_SECRET) is True
    assert container.webhooks.verify_token("nope") is False
    assert container.webhooks.verify_token(None) is False


@pytest.mark.asyncio
async def test_malformed_events_are_dropped_without_failing_batch(container):
    result = await container.webhooks.process_batch(
        [
            event(),
            {"timestamp": 1},
            event(eventKind="opened"),
            event(timestamp=-5),
            "not-an-object",
            event(recipientAddress="b@example.com", eventKind="spamreport"),
        ]
    )
    assert result.as_dict() == {"received": 6, "processed": 2, "duplicates": 0, "invalid": 4, "failed": 0}
    assert await container.suppressions.is_suppressed("a@example.com", Channel.EMAIL)
    assert await container.suppressions.is_suppressed("b@example.com", Channel.EMAIL)


@pytest.mark.asyncio
async def test_redelivered_event_is_counted_as_duplicate(container):
    first = await container.webhooks.process_batch([event(eventId="evt-1")])
    second = await container.webhooks.process_batch([event(eventId="evt-1")])
    assert (first.processed, first.duplicates) == (1, 0)
    assert (second.processed, second.duplicates) == (0, 1)
    assert len(await container.suppressions.list(Channel.EMAIL)) == 1


@pytest.mark.asyncio
async def test_identical_events_without_id_dedup_on_content(container, executor):
    soft = event(bounceSeverity="soft", messageId="m-1")
    result = await container.webhooks.process_batch([soft, dict(soft)])
    assert (result.processed, result.duplicates) == (1, 1)
    state = await container.retries.get_state("a@example.com", Channel.EMAIL, "m-1")
    assert state.attempt_count == 1


@pytest.mark.asyncio
async def test_missing_severity_defaults_to_hard(container):
    await container.webhooks.process_batch([event(bounceSeverity=None)])
    entry = await container.suppressions.get("a@example.com", Channel.EMAIL)
    assert entry.is_permanent
    assert entry.reason.startswith("hard_bounce")


@pytest.mark.asyncio
async def test_events_for_one_recipient_apply_in_arrival_order(container, executor):
    # provider timestamps disagree with arrival; arrival wins
    result = await container.webhooks.process_batch(
        [
            event(timestamp=200, bounceSeverity="soft", messageId="m-1"),
            event(timestamp=100, eventKind="delivered", messageId="m-1"),
        ]
    )
    assert result.processed == 2
    assert executor.jobs == {}
    assert await container.retries.get_state("a@example.com", Channel.EMAIL, "m-1") is None


@pytest.mark.asyncio
async def test_soft_bounce_arriving_after_hard_is_ignored(container, executor):
    result = await container.webhooks.process_batch(
        [
            event(timestamp=200, bounceSeverity="hard"),
            event(timestamp=100, bounceSeverity="soft", messageId="m-1"),
        ]
    )
    assert result.processed == 2
    assert executor.jobs == {}
    assert await container.retries.get_state("a@example.com", Channel.EMAIL, "m-1") is None


@pytest.mark.asyncio
async def test_sms_channel_and_delivered_events(container, executor):
    await container.webhooks.process_batch(
        [event(recipientAddress="+15550001", channel="sms", bounceSeverity="soft", messageId="m-9")]
    )
    assert await container.retries.get_state("+15550001", Channel.SMS, "m-9") is not None

    await container.webhooks.process_batch(
        [event(recipientAddress="+15550001", channel="sms", eventKind="delivered", messageId="m-9", timestamp=2)]
    )
    assert await container.retries.get_state("+15550001", Channel.SMS, "m-9") is None


@pytest.mark.asyncio
async def test_store_outage_fails_events_individually(container, store):
    store.available = False
    result = await container.webhooks.process_batch([event(), event(recipientAddress="b@example.com")])
    assert result.as_dict() == {"received": 2, "processed": 0, "duplicates": 0, "invalid": 0, "failed": 2}


@pytest.mark.asyncio
async def test_content_identity_distinguishes_channels(container):
    shared = {"recipientAddress": "+15550001", "eventKind": "spamreport"}
    result = await container.webhooks.process_batch([event(**shared), event(channel="sms", **shared)])
    assert (result.processed, result.duplicates) == (2, 0)
    assert await container.suppressions.is_suppressed("+15550001", Channel.EMAIL)
    assert await container.suppressions.is_suppressed("+15550001", Channel.SMS)
