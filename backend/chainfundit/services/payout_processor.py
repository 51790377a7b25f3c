import logging
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Mapping, Optional
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from chainfundit.core.exceptions import (
    InvalidStateError,
    PayoutError,
    PayoutNotFoundError,
    ProviderError,
    UnsupportedCurrencyError,
    ValidationError,
)
from chainfundit.models.payout import PAYOUT_MODELS, PayoutStatus
from chainfundit.services.notifications import enqueue_payout_completed
from chainfundit.services.payout_providers import PayoutAdapter, PayoutDestination
from chainfundit.services.payout_routing import PAYOUT_PROVIDER_MAPPING, PAYSTACK, STRIPE, route

logger = logging.getLogger(__name__)

Notifier = Callable[[AsyncSession, Any, str], Awaitable[Any]]


@dataclass
class ProcessingResult:
    payout_id: uuid.UUID
    success: bool
    status: str
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    def as_dict(self) -> dict:
        data = asdict(self)
        data["payout_id"] = str(self.payout_id)
        return data


def payout_model(payout_type: str):
    try:
        return PAYOUT_MODELS[payout_type]
    except KeyError:
        raise ValueError(f"Unknown payout type {payout_type!r}") from None


def build_destination(payout, provider: str) -> PayoutDestination:
    """Bank details the provider needs, taken from the payout's snapshot."""
    if Decimal(str(payout.net_amount or 0)) <= 0:
        raise ValidationError("Net payout amount must be positive")
    if provider == PAYSTACK and not payout.recipient_code:
        if not payout.account_number or not payout.bank_code:
            raise ValidationError("Bank details required for Paystack payout")
    if provider == STRIPE and not payout.recipient_code:
        if not payout.account_number or not payout.bank_country:
            raise ValidationError("International bank account details incomplete")
    return PayoutDestination.from_payout(payout)


def idempotency_key(payout, expected_status: str) -> str:
    """Provider idempotency key for this attempt at paying ``payout``.

    The first attempt uses the bare reference. Each retry of a failed payout
    gets its own suffix so the provider does not replay the stored failure.
    """
    if expected_status != PayoutStatus.failed:
        return payout.reference
    return f"{payout.reference}-{(payout.retry_count or 0) + 1}"


class PayoutProcessor:
    """Drives one payout from ``approved`` (or ``failed``, on retry) to a
    terminal state.

    Provider failures never escape ``process``: they are written to the
    payout as ``failed`` with the error text, and the caller decides
    whether to retry. Only a missing payout or a payout in the wrong
    status raises.
    """

    def __init__(
        self,
        adapters: Mapping[str, PayoutAdapter],
        routing: Mapping[str, str] = PAYOUT_PROVIDER_MAPPING,
        notifier: Optional[Notifier] = enqueue_payout_completed,
    ):
        self.adapters = adapters
        self.routing = routing
        self.notifier = notifier

    async def process(
        self,
        db: AsyncSession,
        payout_type: str,
        payout_id: uuid.UUID,
        expected_status: str = PayoutStatus.approved,
    ) -> ProcessingResult:
        model = payout_model(payout_type)
        payout = await db.get(model, payout_id)
        if payout is None:
            raise PayoutNotFoundError(f"{payout_type} payout {payout_id} not found")
        if payout.status != expected_status:
            raise InvalidStateError(payout.id, payout.status, expected_status)

        provider = route(payout.currency, self.routing)
        if provider is None:
            return await self._fail(db, payout, UnsupportedCurrencyError(payout.currency), expected_status)

        adapter = self.adapters.get(provider)
        if adapter is None:
            return await self._fail(db, payout, ProviderError(f"No adapter configured for {provider}", provider), expected_status)

        try:
            destination = build_destination(payout, provider)
        except ValidationError as e:
            return await self._fail(db, payout, e, expected_status)

        await self._claim(db, payout, expected_status)
        if payout.payout_provider != provider:
            payout.payout_provider = provider

        key = idempotency_key(payout, expected_status)
        logger.info("Processing %s payout %s via %s (%s %s)",
                    payout_type, payout.id, provider, payout.net_amount, payout.currency)
        try:
            result = await adapter.create_payout(
                Decimal(str(payout.net_amount)),
                payout.currency,
                destination,
                payout.reference,
                idempotency_key=key,
            )
        except Exception as e:
            logger.warning("%s payout %s failed at %s: %s", payout_type, payout.id, provider, e)
            return await self._fail(db, payout, e, PayoutStatus.processing)

        now = datetime.utcnow()
        payout.status = PayoutStatus.completed
        payout.transaction_id = result.transaction_id
        if result.recipient_code:
            payout.recipient_code = result.recipient_code
        payout.failure_reason = None
        payout.failure_code = None
        payout.processed_at = now
        payout.updated_at = now
        await db.commit()
        logger.info("%s payout %s completed, transaction %s", payout_type, payout.id, result.transaction_id)

        await self._notify(db, payout, payout_type)
        return ProcessingResult(
            payout_id=payout.id,
            success=True,
            status=PayoutStatus.completed,
            transaction_id=result.transaction_id,
        )

    async def _claim(self, db: AsyncSession, payout, expected_status: str) -> None:
        """Move the payout to ``processing`` only if nobody else did first."""
        model = type(payout)
        res = await db.execute(
            update(model)
            .where(model.id == payout.id, model.status == expected_status)
            .values(status=PayoutStatus.processing, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        await db.refresh(payout)
        if res.rowcount != 1:
            raise InvalidStateError(payout.id, payout.status, expected_status)

    async def _fail(self, db: AsyncSession, payout, error: Exception, from_status: str) -> ProcessingResult:
        code = error.code if isinstance(error, PayoutError) else ProviderError.code
        reason = str(error) or type(error).__name__
        model = type(payout)
        values = dict(
            status=PayoutStatus.failed,
            failure_reason=reason,
            failure_code=code,
            updated_at=datetime.utcnow(),
        )
        recipient_code = getattr(error, "recipient_code", None)
        if recipient_code:
            values["recipient_code"] = recipient_code
        res = await db.execute(
            update(model)
            .where(model.id == payout.id, model.status == from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        await db.refresh(payout)
        if res.rowcount != 1:
            raise InvalidStateError(payout.id, payout.status, from_status)
        return ProcessingResult(
            payout_id=payout.id,
            success=False,
            status=PayoutStatus.failed,
            error=reason,
            error_code=code,
        )

    async def _notify(self, db: AsyncSession, payout, payout_type: str) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier(db, payout, payout_type)
            await db.commit()
        except Exception:
            # The payout is already committed; a lost email is acceptable.
            logger.exception("Could not enqueue completion notification for payout %s", payout.id)
            await db.rollback()
            await db.refresh(payout)


_default_processor: Optional[PayoutProcessor] = None


def get_processor() -> PayoutProcessor:
    global _default_processor
    if _default_processor is None:
        from chainfundit.services.payout_providers import build_adapters
        _default_processor = PayoutProcessor(build_adapters())
    return _default_processor
