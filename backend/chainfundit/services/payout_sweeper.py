import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from chainfundit.config import settings
from chainfundit.core.exceptions import InvalidStateError, PayoutNotFoundError, NON_RETRYABLE_FAILURE_CODES
from chainfundit.database import AsyncSessionLocal
from chainfundit.models.payout import PayoutStatus, PayoutType
from chainfundit.services.payout_processor import PayoutProcessor, ProcessingResult, get_processor, payout_model

logger = logging.getLogger(__name__)


@dataclass
class SweepCounts:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass
class SweepResult:
    by_type: dict[str, SweepCounts] = field(
        default_factory=lambda: {t: SweepCounts() for t in PayoutType.all}
    )

    @property
    def total_attempted(self) -> int:
        return sum(c.attempted for c in self.by_type.values())

    @property
    def total_succeeded(self) -> int:
        return sum(c.succeeded for c in self.by_type.values())

    @property
    def total_failed(self) -> int:
        return sum(c.failed for c in self.by_type.values())

    def as_dict(self) -> dict:
        return {
            "results": {t: vars(c).copy() for t, c in self.by_type.items()},
            "summary": {
                "total_attempted": self.total_attempted,
                "total_succeeded": self.total_succeeded,
                "total_failed": self.total_failed,
            },
        }


async def find_retryable_payouts(
    db: AsyncSession,
    payout_type: str,
    cutoff: datetime,
    max_retries: int,
) -> list[uuid.UUID]:
    model = payout_model(payout_type)
    return list(await db.scalars(
        select(model.id)
        .where(
            model.status == PayoutStatus.failed,
            model.updated_at <= cutoff,
            model.retry_count < max_retries,
            or_(model.failure_code.is_(None), model.failure_code.not_in(NON_RETRYABLE_FAILURE_CODES)),
        )
        .order_by(model.updated_at)
    ))


async def record_failed_attempt(db: AsyncSession, payout_type: str, payout_id: uuid.UUID, result: ProcessingResult) -> None:
    model = payout_model(payout_type)
    payout = await db.get(model, payout_id)
    attempt = (payout.retry_count or 0) + 1
    note = f"Retry attempt {attempt} failed at {datetime.utcnow().isoformat()}: {result.error}"
    await db.execute(
        update(model)
        .where(model.id == payout_id)
        .values(
            retry_count=model.retry_count + 1,
            notes=f"{payout.notes}\n{note}" if payout.notes else note,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(payout)


async def retry_payout(
    db: AsyncSession,
    processor: PayoutProcessor,
    payout_type: str,
    payout_id: uuid.UUID,
) -> ProcessingResult:
    """Re-drive one ``failed`` payout, regardless of its retry budget."""
    result = await processor.process(db, payout_type, payout_id, expected_status=PayoutStatus.failed)
    if not result.success:
        await record_failed_attempt(db, payout_type, payout_id, result)
    return result


async def retry_failed_payouts(
    processor: Optional[PayoutProcessor] = None,
    session_factory: async_sessionmaker = AsyncSessionLocal,
    max_retries: int = 3,
    retry_delay_minutes: int = 60,
    now: Optional[datetime] = None,
) -> SweepResult:
    """Re-drive failed payouts that have rested for ``retry_delay_minutes``.

    Every payout is handled in its own session, so an interrupted sweep
    leaves finished payouts in their new state and the rest untouched.
    """
    processor = processor or get_processor()
    cutoff = (now or datetime.utcnow()) - timedelta(minutes=retry_delay_minutes)
    sweep = SweepResult()

    for payout_type in PayoutType.all:
        counts = sweep.by_type[payout_type]
        async with session_factory() as db:
            payout_ids = await find_retryable_payouts(db, payout_type, cutoff, max_retries)

        for payout_id in payout_ids:
            async with session_factory() as db:
                try:
                    result = await retry_payout(db, processor, payout_type, payout_id)
                except (InvalidStateError, PayoutNotFoundError) as e:
                    # Picked up by an admin retry or deleted since the scan
                    logger.info("Skipping %s payout %s: %s", payout_type, payout_id, e)
                    counts.skipped += 1
                    continue
            counts.attempted += 1
            if result.success:
                counts.succeeded += 1
            else:
                counts.failed += 1

    if sweep.total_attempted:
        logger.info("Payout retry sweep: %s", sweep.as_dict()["summary"])
    return sweep


async def sweep_failed_payouts_job():
    await retry_failed_payouts(
        max_retries=settings.PAYOUT_MAX_RETRIES,
        retry_delay_minutes=settings.PAYOUT_RETRY_DELAY_MINUTES,
    )
