import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from chainfundit.config import settings
from chainfundit.core.deps import get_payout_processor, get_session_factory
from chainfundit.core.security import create_access_token
from chainfundit.database import Base, get_db
from chainfundit.main import app
from chainfundit.models.campaign import Campaign, Chainer, Donation, DonationStatus
from chainfundit.models.payout import CampaignPayout, CommissionPayout, PayoutStatus
from chainfundit.models.user import User, UserRole
from chainfundit.services.payout_processor import PayoutProcessor
from chainfundit.services.payout_providers import PayoutResult
from chainfundit.services.payout_routing import PAYSTACK, STRIPE, calculate_fees, route

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def quiet_settings(monkeypatch):
    """Keep tests off real providers whatever the local environment holds."""
    monkeypatch.setattr(settings, "RESEND_API_KEY", "")
    monkeypatch.setattr(settings, "ADMIN_ALERT_EMAIL", "")
    monkeypatch.setattr(settings, "CRON_SECRET", "")
    monkeypatch.setattr(settings, "STRIPE_PLATFORM_ACCOUNT_ID", "")


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def adapters():
    stripe_adapter = MagicMock()
    stripe_adapter.name = STRIPE
    stripe_adapter.create_payout = AsyncMock(
        return_value=PayoutResult(transaction_id="po_test", recipient_code="ba_test", status="pending")
    )
    paystack_adapter = MagicMock()
    paystack_adapter.name = PAYSTACK
    paystack_adapter.create_payout = AsyncMock(
        return_value=PayoutResult(transaction_id="TRF_test", recipient_code="RCP_test", status="success")
    )
    return {STRIPE: stripe_adapter, PAYSTACK: paystack_adapter}


@pytest.fixture
def processor(adapters):
    return PayoutProcessor(adapters)


@pytest_asyncio.fixture
async def client(session_factory, processor):
    async def override_get_db():
        async with session_factory() as session:
            yield session
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payout_processor] = lambda: processor
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _headers


class Factory:
    """Builds committed rows for tests."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def user(self, role=UserRole.user, **kwargs):
        self._seq += 1
        fields = dict(
            email=f"user{self._seq}@example.com",
            full_name=f"Test User {self._seq}",
            role=role,
            account_number="0123456789",
            bank_code="058",
            bank_name="GTBank",
            account_name="Test User",
            account_verified=True,
            international_account_number="000123456789",
            international_routing_number="110000000",
            international_bank_country="US",
            international_bank_name="Chase",
            international_account_name="Test User",
            international_account_verified=True,
        )
        fields.update(kwargs)
        return await self._save(User(**fields))

    async def admin(self, **kwargs):
        return await self.user(role=UserRole.admin, **kwargs)

    async def campaign(self, creator, currency="NGN", **kwargs):
        fields = dict(creator_id=creator.id, title="Clean water for Ikorodu", currency=currency, goal_amount=Decimal("1000000"))
        fields.update(kwargs)
        return await self._save(Campaign(**fields))

    async def donation(self, campaign, amount, currency=None, status=DonationStatus.completed):
        return await self._save(Donation(
            campaign_id=campaign.id,
            amount=Decimal(str(amount)),
            currency=currency or campaign.currency,
            payment_status=status,
        ))

    async def chainer(self, user, campaign, **kwargs):
        self._seq += 1
        fields = dict(
            user_id=user.id,
            campaign_id=campaign.id,
            referral_code=f"REF{self._seq:05d}",
            commission_earned=Decimal("5000"),
        )
        fields.update(kwargs)
        return await self._save(Chainer(**fields))

    def _payout_fields(self, currency, amount, status, kwargs):
        self._seq += 1
        provider = route(currency) or STRIPE
        fees, net = calculate_fees(Decimal(str(amount)), provider)
        fields = dict(
            requested_amount=Decimal(str(amount)),
            gross_amount=Decimal(str(amount)),
            fees=fees,
            net_amount=net,
            currency=currency,
            status=status,
            payout_provider=provider,
            reference=f"cp_test{self._seq:06d}",
            bank_name="GTBank",
            account_number="0123456789",
            account_name="Test User",
            bank_code="058",
            bank_country="US",
            routing_number="110000000",
            updated_at=datetime.utcnow(),
        )
        fields.update(kwargs)
        return fields

    async def payout(self, user, campaign, currency="NGN", amount="10000", status=PayoutStatus.approved, **kwargs):
        fields = self._payout_fields(currency, amount, status, kwargs)
        return await self._save(CampaignPayout(user_id=user.id, campaign_id=campaign.id, **fields))

    async def commission_payout(self, chainer, currency="NGN", amount="1000", status=PayoutStatus.approved, **kwargs):
        fields = self._payout_fields(currency, amount, status, kwargs)
        fields["reference"] = fields["reference"].replace("cp_", "cm_")
        return await self._save(CommissionPayout(chainer_id=chainer.id, campaign_id=chainer.campaign_id, **fields))


@pytest.fixture
def factory(db):
    return Factory(db)
