import logging
import secrets
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import async_sessionmaker
from chainfundit.config import settings
from chainfundit.core.deps import get_payout_processor, get_session_factory
from chainfundit.services.notifications import dispatch_pending_notifications
from chainfundit.services.payout_processor import PayoutProcessor
from chainfundit.services.payout_sweeper import retry_failed_payouts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def verify_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    # Open when no secret is configured (local development)
    if not settings.CRON_SECRET:
        return
    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")


@router.post("/payouts", dependencies=[Depends(verify_cron_secret)])
async def run_payout_cron(
    processor: PayoutProcessor = Depends(get_payout_processor),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Retry failed payouts, then flush the notification outbox."""
    sweep = await retry_failed_payouts(
        processor=processor,
        session_factory=session_factory,
        max_retries=settings.PAYOUT_MAX_RETRIES,
        retry_delay_minutes=settings.PAYOUT_RETRY_DELAY_MINUTES,
    )
    notifications = await dispatch_pending_notifications(session_factory)
    return {
        "success": True,
        "timestamp": datetime.utcnow().isoformat(),
        "retry": sweep.as_dict(),
        "notifications": notifications,
    }


@router.get("/payouts")
async def payout_cron_health():
    return {
        "status": "ok",
        "service": "payout-cron",
        "timestamp": datetime.utcnow().isoformat(),
    }
