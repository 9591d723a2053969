import pytest

from deliverability.application.services import BounceOutcome
from deliverability.domain.entities import BounceEvent
from deliverability.domain.value_objects import BounceSeverity, Channel, SuppressionSource

from doubles import T0

MIN = 60 * 1000


def bounce(severity, recipient="a@example.com", message_id="m-1", reason="mailbox full"):
    return BounceEvent(
        recipient=recipient,
        channel=Channel.EMAIL,
        timestamp=T0 // 1000,
        severity=severity,
        reason=reason,
        message_id=message_id,
        payload={"subject": "Your bid"},
    )


@pytest.mark.asyncio
async def test_hard_bounce_suppresses_permanently(container, clock):
    outcome = await container.classifier.handle(bounce(BounceSeverity.HARD, reason="no such user"))
    assert outcome is BounceOutcome.SUPPRESSED

    entry = await container.suppressions.get("a@example.com", Channel.EMAIL)
    assert entry.expires_at is None
    assert entry.source is SuppressionSource.BOUNCE
    assert entry.reason == "hard_bounce: no such user"

    clock.advance(seconds=400 * 24 * 3600)
    assert await container.suppressions.is_suppressed("a@example.com", Channel.EMAIL)


@pytest.mark.asyncio
async def test_same_hard_bounce_twice_has_one_effect(container):
    first = await container.classifier.handle(bounce(BounceSeverity.HARD))
    created = (await container.suppressions.get("a@example.com", Channel.EMAIL)).created_at
    second = await container.classifier.handle(bounce(BounceSeverity.HARD))

    assert (first, second) == (BounceOutcome.SUPPRESSED, BounceOutcome.IGNORED)
    entries = await container.suppressions.list(Channel.EMAIL)
    assert len(entries) == 1
    assert entries[0].created_at == created


@pytest.mark.asyncio
async def test_soft_bounce_schedule_scenario(container, clock, executor, dispatcher):
    # t=0: first soft bounce -> retry at 300s
    assert await container.classifier.handle(bounce(BounceSeverity.SOFT)) is BounceOutcome.RETRY_SCHEDULED
    assert executor.next_due() == T0 + 5 * MIN

    clock.advance(seconds=300)
    assert await executor.run_due() == 1
    assert len(dispatcher.calls) == 1

    # the retry bounces too -> attempt 2, due at 2100s
    assert await container.classifier.handle(bounce(BounceSeverity.SOFT)) is BounceOutcome.RETRY_SCHEDULED
    assert executor.next_due() == T0 + 2100 * 1000
    state = await container.retries.get_state("a@example.com", Channel.EMAIL, "m-1")
    assert state.attempt_count == 2
    assert state.next_attempt_number == 2

    clock.advance(seconds=1800)
    await executor.run_due()
    assert len(dispatcher.calls) == 2

    # third soft bounce -> permanent suppression, nothing left armed
    assert await container.classifier.handle(bounce(BounceSeverity.SOFT)) is BounceOutcome.SUPPRESSED
    entry = await container.suppressions.get("a@example.com", Channel.EMAIL)
    assert entry.is_permanent and entry.reason == "max_retries"
    assert executor.jobs == {}
    assert await container.retries.get_state("a@example.com", Channel.EMAIL, "m-1") is None


@pytest.mark.asyncio
async def test_soft_after_hard_is_a_no_op(container, executor):
    await container.classifier.handle(bounce(BounceSeverity.HARD))
    assert await container.classifier.handle(bounce(BounceSeverity.SOFT)) is BounceOutcome.IGNORED
    assert executor.jobs == {}
    assert await container.retries.get_state("a@example.com", Channel.EMAIL, "m-1") is None


@pytest.mark.asyncio
async def test_hard_bounce_cancels_pending_retry(container, clock, executor, dispatcher):
    await container.classifier.handle(bounce(BounceSeverity.SOFT))
    await container.classifier.handle(bounce(BounceSeverity.HARD))
    assert executor.jobs == {}
    clock.advance(seconds=3600)
    await executor.run_due()
    assert dispatcher.calls == []


@pytest.mark.asyncio
async def test_spam_report_suppresses(container):
    outcome = await container.classifier.handle_spam_report("a@example.com", Channel.EMAIL, "user complaint")
    assert outcome is BounceOutcome.SUPPRESSED
    entry = await container.suppressions.get("a@example.com", Channel.EMAIL)
    assert (entry.reason, entry.source, entry.expires_at) == ("spam_report", SuppressionSource.SPAM, None)


@pytest.mark.asyncio
async def test_blocked_is_log_only(container):
    outcome = await container.classifier.handle_blocked("a@example.com", Channel.EMAIL, "ip reputation")
    assert outcome is BounceOutcome.LOGGED
    assert not await container.suppressions.is_suppressed("a@example.com", Channel.EMAIL)


@pytest.mark.asyncio
async def test_delivered_clears_retry_state(container, executor):
    await container.classifier.handle(bounce(BounceSeverity.SOFT))
    assert await container.classifier.handle_delivered("a@example.com", Channel.EMAIL, "m-1") is BounceOutcome.CLEARED
    assert executor.jobs == {}
    assert await container.retries.get_state("a@example.com", Channel.EMAIL, "m-1") is None


@pytest.mark.asyncio
async def test_hard_bounce_replaces_temporary_opt_out(container, clock):
    await container.opt_outs.process_opt_out("+15550001")

    event = BounceEvent(
        recipient="+15550001",
        channel=Channel.SMS,
        timestamp=T0 // 1000,
        severity=BounceSeverity.HARD,
        reason="unreachable",
    )
    assert await container.classifier.handle(event) is BounceOutcome.SUPPRESSED

    entry = await container.suppressions.get("+15550001", Channel.SMS)
    assert (entry.source, entry.expires_at) == (SuppressionSource.BOUNCE, None)

    clock.advance(seconds=31 * 24 * 3600)
    assert await container.suppressions.is_suppressed("+15550001", Channel.SMS)


@pytest.mark.asyncio
async def test_spam_report_replaces_timed_manual_suppression(container, clock):
    await container.suppressions.suppress(
        "a@example.com", Channel.EMAIL, reason="manual", source=SuppressionSource.MANUAL, ttl_seconds=3600
    )

    outcome = await container.classifier.handle_spam_report("a@example.com", Channel.EMAIL)
    assert outcome is BounceOutcome.SUPPRESSED

    clock.advance(seconds=2 * 3600)
    entry = await container.suppressions.get("a@example.com", Channel.EMAIL)
    assert (entry.source, entry.expires_at) == (SuppressionSource.SPAM, None)


@pytest.mark.asyncio
async def test_soft_bounce_under_temporary_suppression_is_ignored(container, executor):
    await container.suppressions.suppress(
        "a@example.com", Channel.EMAIL, reason="manual", source=SuppressionSource.MANUAL, ttl_seconds=3600
    )

    assert await container.classifier.handle(bounce(BounceSeverity.SOFT)) is BounceOutcome.IGNORED
    assert executor.jobs == {}
