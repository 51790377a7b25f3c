"""Creating payout requests: balances, fees and the bank details snapshot."""
import logging
import uuid
from decimal import Decimal
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from chainfundit.core.exceptions import ValidationError, UnsupportedCurrencyError
from chainfundit.models.campaign import Campaign, Chainer, Donation, DonationStatus
from chainfundit.models.payout import CampaignPayout, CommissionPayout, PayoutStatus
from chainfundit.models.user import User
from chainfundit.services.currency import convert, currency_code
from chainfundit.services.payout_routing import PAYSTACK, calculate_fees, get_payout_config, route

logger = logging.getLogger(__name__)

# Statuses that hold on to part of the balance
RESERVED_STATUSES = (
    PayoutStatus.pending,
    PayoutStatus.approved,
    PayoutStatus.processing,
    PayoutStatus.completed,
    PayoutStatus.failed,
)


class ActivePayoutExists(ValidationError):
    code = "active_payout"


class AccountLocked(ValidationError):
    code = "account_locked"


def new_reference(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


async def campaign_total_raised(db: AsyncSession, campaign: Campaign) -> Decimal:
    """Completed donations converted into the campaign's currency."""
    target = currency_code(campaign.currency)
    rows = await db.execute(
        select(Donation.currency, func.sum(Donation.amount))
        .where(
            Donation.campaign_id == campaign.id,
            Donation.payment_status == DonationStatus.completed,
        )
        .group_by(Donation.currency)
    )
    total = Decimal("0")
    for donation_currency, amount in rows:
        total += convert(amount or 0, donation_currency, target)
    return total.quantize(Decimal("0.01"))


async def campaign_reserved_amount(db: AsyncSession, campaign_id: uuid.UUID) -> Decimal:
    reserved = await db.scalar(
        select(func.sum(CampaignPayout.requested_amount)).where(
            CampaignPayout.campaign_id == campaign_id,
            CampaignPayout.status.in_(RESERVED_STATUSES),
        )
    )
    return Decimal(str(reserved or 0))


async def active_campaign_payout(db: AsyncSession, campaign_id: uuid.UUID) -> Optional[CampaignPayout]:
    return await db.scalar(
        select(CampaignPayout).where(
            CampaignPayout.campaign_id == campaign_id,
            CampaignPayout.status.in_(PayoutStatus.open),
        ).limit(1)
    )


async def commission_available(db: AsyncSession, chainer: Chainer) -> Decimal:
    reserved = await db.scalar(
        select(func.sum(CommissionPayout.requested_amount)).where(
            CommissionPayout.chainer_id == chainer.id,
            CommissionPayout.status.in_(RESERVED_STATUSES),
        )
    )
    return Decimal(str(chainer.commission_earned or 0)) - Decimal(str(reserved or 0))


def bank_snapshot(user: User, provider: str) -> dict:
    """Copy the user's bank profile for ``provider`` onto the payout."""
    if provider == PAYSTACK:
        if not user.account_verified:
            raise ValidationError("Bank account not verified")
        if not user.account_number or not user.bank_code:
            raise ValidationError("Bank details incomplete")
        return {
            "bank_name": user.bank_name,
            "account_number": user.account_number,
            "account_name": user.account_name or user.full_name,
            "bank_code": user.bank_code,
        }

    if not user.international_account_verified:
        raise ValidationError(
            "International bank account not verified. Please add and verify your bank account details."
        )
    if not user.international_account_number or not user.international_bank_country:
        raise ValidationError("International bank account details incomplete")
    return {
        "bank_name": user.international_bank_name,
        "account_number": user.international_account_number,
        "account_name": user.international_account_name or user.full_name,
        "bank_country": user.international_bank_country.upper(),
        "routing_number": user.international_routing_number,
        "swift_bic": user.international_swift_bic,
    }


def _check_account(user: User) -> None:
    if user.account_locked:
        raise AccountLocked("Account is locked. Contact support to request a payout.")


def _resolve_provider(currency: str, requested_provider: Optional[str]) -> str:
    provider = route(currency)
    if provider is None:
        raise UnsupportedCurrencyError(currency)
    if requested_provider and requested_provider.lower() != provider:
        raise ValidationError(f"{currency} payouts are handled by {provider}, not {requested_provider}")
    return provider


def _check_minimum(amount: Decimal, provider: str, currency: str) -> None:
    minimum = get_payout_config(provider)["min_payout_amount"]
    if amount < minimum:
        raise ValidationError(f"Minimum payout via {provider} is {minimum} {currency}")


async def create_campaign_payout(
    db: AsyncSession,
    user: User,
    campaign: Campaign,
    amount: Decimal,
    currency: Optional[str] = None,
    requested_provider: Optional[str] = None,
) -> CampaignPayout:
    _check_account(user)
    campaign_currency = currency_code(campaign.currency)
    payout_currency = currency_code(currency) if currency else campaign_currency
    if payout_currency != campaign_currency:
        raise ValidationError(f"Payouts for this campaign must be requested in {campaign_currency}")

    provider = _resolve_provider(payout_currency, requested_provider)
    _check_minimum(amount, provider, payout_currency)
    snapshot = bank_snapshot(user, provider)

    if await active_campaign_payout(db, campaign.id):
        raise ActivePayoutExists("An active payout already exists for this campaign")

    total_raised = await campaign_total_raised(db, campaign)
    if total_raised <= 0:
        raise ValidationError("No donations available for payout")
    available = total_raised - await campaign_reserved_amount(db, campaign.id)
    if amount > available:
        raise ValidationError(f"Requested amount exceeds available funds ({available} {payout_currency})")

    fees, net = calculate_fees(amount, provider)
    payout = CampaignPayout(
        user_id=user.id,
        campaign_id=campaign.id,
        requested_amount=amount,
        gross_amount=amount,
        fees=fees,
        net_amount=net,
        currency=payout_currency,
        status=PayoutStatus.pending,
        payout_provider=provider,
        reference=new_reference("cp"),
        **snapshot,
    )
    db.add(payout)
    await db.flush()
    logger.info("Campaign payout %s requested: %s %s via %s", payout.id, amount, payout_currency, provider)
    return payout


async def create_commission_payout(
    db: AsyncSession,
    user: User,
    chainer: Chainer,
    amount: Decimal,
) -> CommissionPayout:
    _check_account(user)
    campaign = await db.get(Campaign, chainer.campaign_id)
    payout_currency = currency_code(campaign.currency if campaign else None)
    provider = _resolve_provider(payout_currency, None)
    _check_minimum(amount, provider, payout_currency)
    snapshot = bank_snapshot(user, provider)

    available = await commission_available(db, chainer)
    if amount > available:
        raise ValidationError(f"Requested amount exceeds available commission ({available} {payout_currency})")

    fees, net = calculate_fees(amount, provider)
    payout = CommissionPayout(
        chainer_id=chainer.id,
        campaign_id=chainer.campaign_id,
        requested_amount=amount,
        gross_amount=amount,
        fees=fees,
        net_amount=net,
        currency=payout_currency,
        status=PayoutStatus.pending,
        payout_provider=provider,
        reference=new_reference("cm"),
        **snapshot,
    )
    db.add(payout)
    await db.flush()
    logger.info("Commission payout %s requested by chainer %s: %s %s", payout.id, chainer.id, amount, payout_currency)
    return payout
