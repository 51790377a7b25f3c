from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch
import pytest
from chainfundit.config import settings
from chainfundit.models.payout import PayoutStatus


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_cron_health_check(client):
    r = await client.get("/api/cron/payouts")
    assert r.status_code == 200
    assert r.json()["service"] == "payout-cron"


@pytest.mark.asyncio
async def test_cron_requires_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

    assert (await client.post("/api/cron/payouts")).status_code == 401
    r = await client.post("/api/cron/payouts", headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_cron_retries_and_dispatches(client, db, factory, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    user = await factory.user()
    campaign = await factory.campaign(user)
    payout = await factory.payout(
        user, campaign,
        status=PayoutStatus.failed,
        failure_reason="Paystack error: timeout",
        updated_at=datetime.utcnow() - timedelta(hours=2),
    )

    r = await client.post("/api/cron/payouts", headers={"Authorization": "Bearer s3cret"})

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["retry"]["summary"]["total_succeeded"] == 1
    # No Resend key in tests, so the completion email is skipped
    assert body["notifications"]["skipped"] == 1
    await db.refresh(payout)
    assert payout.status == PayoutStatus.completed


@pytest.mark.asyncio
async def test_banks_for_paystack_currency(client):
    banks = [{"name": "GTBank", "code": "058", "slug": "guaranty-trust-bank"}]
    with patch("chainfundit.routers.banks.PaystackPayoutAdapter.list_banks", AsyncMock(return_value=banks)):
        r = await client.get("/api/banks?currency=NGN")
    assert r.status_code == 200
    assert r.json() == {"currency": "NGN", "banks": banks}


@pytest.mark.asyncio
async def test_banks_rejects_stripe_currency(client):
    r = await client.get("/api/banks?currency=USD")
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_currency_detect_uses_forwarded_ip(client):
    with patch("chainfundit.routers.currency.detect_currency", AsyncMock(return_value="NGN")) as detect:
        r = await client.get("/api/currency/detect", headers={"X-Forwarded-For": "102.89.0.1, 10.0.0.1"})
    assert r.status_code == 200
    assert r.json() == {"currency": "NGN", "symbol": "₦", "payout_provider": "paystack"}
    detect.assert_awaited_once_with("102.89.0.1")


@pytest.mark.asyncio
async def test_currency_rates(client):
    rates = {"USD": Decimal("1500"), "NGN": Decimal("1")}
    with patch("chainfundit.routers.currency.fetch_exchange_rates", AsyncMock(return_value=rates)):
        r = await client.get("/api/currency/rates?base=ngn")
    assert r.status_code == 200
    assert r.json() == {"base": "NGN", "rates": {"NGN": 1.0, "USD": 1500.0}}
