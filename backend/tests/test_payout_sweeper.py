from datetime import datetime, timedelta
import pytest
from chainfundit.core.exceptions import ProviderError
from chainfundit.models.payout import PayoutStatus, PayoutType
from chainfundit.services.payout_routing import PAYSTACK
from chainfundit.services.payout_sweeper import find_retryable_payouts, retry_failed_payouts, retry_payout


def hours_ago(hours):
    return datetime.utcnow() - timedelta(hours=hours)


async def failed_payout(factory, **kwargs):
    user = await factory.user()
    campaign = await factory.campaign(user)
    fields = dict(status=PayoutStatus.failed, failure_reason="Paystack error: timeout", updated_at=hours_ago(2))
    fields.update(kwargs)
    return await factory.payout(user, campaign, **fields)


@pytest.mark.asyncio
async def test_retries_rested_failed_payout(db, factory, processor, session_factory):
    payout = await failed_payout(factory)

    sweep = await retry_failed_payouts(processor=processor, session_factory=session_factory)

    counts = sweep.by_type[PayoutType.campaign]
    assert (counts.attempted, counts.succeeded, counts.failed) == (1, 1, 0)
    await db.refresh(payout)
    assert payout.status == PayoutStatus.completed
    assert payout.transaction_id == "TRF_test"


@pytest.mark.asyncio
async def test_recent_failure_waits_for_delay(db, factory, processor, adapters, session_factory):
    await failed_payout(factory, updated_at=datetime.utcnow() - timedelta(minutes=10))

    sweep = await retry_failed_payouts(processor=processor, session_factory=session_factory, retry_delay_minutes=60)

    assert sweep.total_attempted == 0
    adapters[PAYSTACK].create_payout.assert_not_called()


@pytest.mark.asyncio
async def test_exhausted_retry_budget_is_skipped(db, factory, processor, adapters, session_factory):
    await failed_payout(factory, retry_count=3)

    sweep = await retry_failed_payouts(processor=processor, session_factory=session_factory, max_retries=3)

    assert sweep.total_attempted == 0
    adapters[PAYSTACK].create_payout.assert_not_called()


@pytest.mark.parametrize("failure_code", ["unsupported_currency", "validation"])
@pytest.mark.asyncio
async def test_non_retryable_failures_are_skipped(db, factory, processor, adapters, session_factory, failure_code):
    await failed_payout(factory, failure_code=failure_code)

    sweep = await retry_failed_payouts(processor=processor, session_factory=session_factory)

    assert sweep.total_attempted == 0
    adapters[PAYSTACK].create_payout.assert_not_called()


@pytest.mark.asyncio
async def test_other_statuses_are_ignored(db, factory, processor, adapters, session_factory):
    user = await factory.user()
    campaign = await factory.campaign(user)
    for status in (PayoutStatus.pending, PayoutStatus.approved, PayoutStatus.completed, PayoutStatus.rejected):
        await factory.payout(user, campaign, status=status, updated_at=hours_ago(5))

    sweep = await retry_failed_payouts(processor=processor, session_factory=session_factory)

    assert sweep.total_attempted == 0


@pytest.mark.asyncio
async def test_failed_retry_counts_and_is_not_picked_again(db, factory, processor, adapters, session_factory):
    adapters[PAYSTACK].create_payout.side_effect = ProviderError("Paystack error: Insufficient balance", PAYSTACK)
    payout = await failed_payout(factory)

    first = await retry_failed_payouts(processor=processor, session_factory=session_factory)
    second = await retry_failed_payouts(processor=processor, session_factory=session_factory)

    counts = first.by_type[PayoutType.campaign]
    assert (counts.attempted, counts.succeeded, counts.failed) == (1, 0, 1)
    assert second.total_attempted == 0
    assert adapters[PAYSTACK].create_payout.await_count == 1

    await db.refresh(payout)
    assert payout.status == PayoutStatus.failed
    assert payout.retry_count == 1
    assert "Retry attempt 1 failed" in payout.notes
    assert "Insufficient balance" in payout.failure_reason


@pytest.mark.asyncio
async def test_later_sweeps_send_fresh_idempotency_keys(db, factory, processor, adapters, session_factory):
    adapters[PAYSTACK].create_payout.side_effect = ProviderError("Paystack error: Insufficient balance", PAYSTACK)
    payout = await failed_payout(factory)

    await retry_failed_payouts(processor=processor, session_factory=session_factory)
    await retry_failed_payouts(
        processor=processor, session_factory=session_factory, now=datetime.utcnow() + timedelta(hours=2),
    )

    calls = adapters[PAYSTACK].create_payout.await_args_list
    assert [c.kwargs["idempotency_key"] for c in calls] == [f"{payout.reference}-1", f"{payout.reference}-2"]
    assert [c.args[3] for c in calls] == [payout.reference, payout.reference]
    await db.refresh(payout)
    assert payout.retry_count == 2


@pytest.mark.asyncio
async def test_sweep_covers_commission_payouts(db, factory, processor, session_factory):
    creator = await factory.user()
    campaign = await factory.campaign(creator)
    chainer = await factory.chainer(await factory.user(), campaign)
    payout = await factory.commission_payout(chainer, status=PayoutStatus.failed, updated_at=hours_ago(3))

    sweep = await retry_failed_payouts(processor=processor, session_factory=session_factory)

    assert sweep.by_type[PayoutType.commission].succeeded == 1
    assert sweep.by_type[PayoutType.campaign].attempted == 0
    await db.refresh(payout)
    assert payout.status == PayoutStatus.completed


@pytest.mark.asyncio
async def test_find_retryable_orders_oldest_first(db, factory):
    newer = await failed_payout(factory, updated_at=hours_ago(2))
    older = await failed_payout(factory, updated_at=hours_ago(6))

    ids = await find_retryable_payouts(db, PayoutType.campaign, hours_ago(1), max_retries=3)

    assert ids == [older.id, newer.id]


@pytest.mark.asyncio
async def test_manual_retry_ignores_budget(db, factory, processor):
    payout = await failed_payout(factory, retry_count=7, updated_at=datetime.utcnow())

    result = await retry_payout(db, processor, PayoutType.campaign, payout.id)

    assert result.success is True
    await db.refresh(payout)
    assert payout.status == PayoutStatus.completed
    assert payout.retry_count == 7


@pytest.mark.asyncio
async def test_sweep_summary_shape(db, factory, processor, session_factory):
    await failed_payout(factory)

    data = (await retry_failed_payouts(processor=processor, session_factory=session_factory)).as_dict()

    assert data["summary"] == {"total_attempted": 1, "total_succeeded": 1, "total_failed": 0}
    assert set(data["results"]) == {PayoutType.campaign, PayoutType.commission}
    assert data["results"][PayoutType.campaign]["succeeded"] == 1
