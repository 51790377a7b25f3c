"""Payout notifications.

Events are written to the ``notifications`` table first (the outbox) and
delivered later by ``dispatch_pending_notifications``, so a slow or broken
email provider never sits between a payout and its status update.
"""
import logging
from datetime import datetime
from html import escape
from typing import Optional
import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from chainfundit.config import settings
from chainfundit.core.exceptions import EmailDeliveryError
from chainfundit.database import AsyncSessionLocal
from chainfundit.models.campaign import Campaign, Chainer
from chainfundit.models.notification import Notification, EmailStatus
from chainfundit.models.payout import CampaignPayout, PayoutType
from chainfundit.models.user import User
from chainfundit.services.currency import format_amount
from chainfundit.services.payout_routing import PAYSTACK, PAYOUT_CONFIG

logger = logging.getLogger(__name__)

MAX_EMAIL_ATTEMPTS = 5


async def resolve_payout_owner(db: AsyncSession, payout) -> Optional[User]:
    if isinstance(payout, CampaignPayout):
        return await db.get(User, payout.user_id)
    chainer = await db.get(Chainer, payout.chainer_id)
    if not chainer:
        return None
    return await db.get(User, chainer.user_id)


def _mask(account_number: Optional[str]) -> str:
    if not account_number:
        return ""
    return "*" * max(len(account_number) - 4, 0) + account_number[-4:]


def _render_payout_email(heading: str, intro: str, payout, user: User, campaign_title: str) -> str:
    rows = [
        ("Campaign", campaign_title),
        ("Requested amount", format_amount(payout.requested_amount, payout.currency)),
        ("Fees", format_amount(payout.fees, payout.currency)),
        ("Net amount", format_amount(payout.net_amount, payout.currency)),
        ("Provider", PAYOUT_CONFIG[payout.payout_provider]["name"] if payout.payout_provider in PAYOUT_CONFIG else payout.payout_provider),
        ("Reference", payout.reference),
    ]
    if payout.account_name:
        rows.append(("Bank account", f"{payout.account_name} {_mask(payout.account_number)} {payout.bank_name or ''}".strip()))
    table = "".join(
        f"<tr><td style=\"padding:4px 12px 4px 0;color:#555\">{escape(label)}</td>"
        f"<td style=\"padding:4px 0\"><strong>{escape(str(value))}</strong></td></tr>"
        for label, value in rows
    )
    return (
        "<div style=\"font-family:Arial,sans-serif;max-width:560px;margin:0 auto\">"
        f"<h2 style=\"color:#104901\">{escape(heading)}</h2>"
        f"<p>Hi {escape(user.display_name)},</p>"
        f"<p>{escape(intro)}</p>"
        f"<table>{table}</table>"
        "<p style=\"color:#777;font-size:12px\">ChainFundIt</p>"
        "</div>"
    )


async def _campaign_title(db: AsyncSession, payout) -> str:
    campaign = await db.get(Campaign, payout.campaign_id)
    return campaign.title if campaign else "Commission payout"


async def enqueue_payout_approved(db: AsyncSession, payout) -> Optional[Notification]:
    user = await resolve_payout_owner(db, payout)
    if not user:
        logger.warning("No owner found for payout %s, approval notification dropped", payout.id)
        return None
    title = await _campaign_title(db, payout)
    net = format_amount(payout.net_amount, payout.currency)
    processing_time = "1-3 business days" if payout.payout_provider == PAYSTACK else "2-7 business days"
    notification = Notification(
        user_id=user.id,
        type="payout_approved",
        title="Payout approved",
        body=f"Your payout of {net} for {title} was approved and will arrive in {processing_time}.",
        email_to=user.email,
        email_subject=f"Payout Confirmation - {net} - ChainFundIt",
        email_html=_render_payout_email(
            "Your payout has been approved",
            f"We approved your payout. Funds usually arrive within {processing_time}.",
            payout, user, title,
        ),
    )
    db.add(notification)
    return notification


async def enqueue_payout_completed(db: AsyncSession, payout, payout_type: str = PayoutType.campaign) -> Optional[Notification]:
    user = await resolve_payout_owner(db, payout)
    if not user:
        logger.warning("No owner found for %s payout %s, completion notification dropped", payout_type, payout.id)
        return None
    title = await _campaign_title(db, payout)
    net = format_amount(payout.net_amount, payout.currency)
    notification = Notification(
        user_id=user.id,
        type="payout_completed",
        title="Payout sent",
        body=f"{net} for {title} has been sent to your bank account.",
        email_to=user.email,
        email_subject=f"Payout Completed - {net} - ChainFundIt",
        email_html=_render_payout_email(
            "Your payout is on its way",
            f"We sent your payout on {datetime.utcnow():%B %d, %Y}.",
            payout, user, title,
        ),
    )
    db.add(notification)
    return notification


async def enqueue_payout_request_alert(db: AsyncSession, payout, requester: User) -> Optional[Notification]:
    if not settings.ADMIN_ALERT_EMAIL:
        return None
    amount = format_amount(payout.requested_amount, payout.currency)
    notification = Notification(
        user_id=None,
        type="payout_requested",
        title="New payout request",
        body=f"{requester.display_name} requested {amount}.",
        email_to=settings.ADMIN_ALERT_EMAIL,
        email_subject=f"New payout request - {amount}",
        email_html=(
            f"<p>{escape(requester.display_name)} ({escape(requester.email)}) requested a payout of "
            f"<strong>{escape(amount)}</strong> via {escape(payout.payout_provider)}.</p>"
            f"<p>Reference: {escape(payout.reference)}</p>"
        ),
    )
    db.add(notification)
    return notification


async def send_email(to: str, subject: str, html: str) -> Optional[str]:
    """Send one email through Resend. Returns the Resend message id."""
    client = httpx.AsyncClient(timeout=10.0)
    try:
        resp = await client.post(
            f"{settings.RESEND_BASE_URL}/emails",
            headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
            json={
                "from": settings.RESEND_FROM_EMAIL,
                "to": [to],
                "subject": subject,
                "html": html,
            },
        )
    except httpx.HTTPError as e:
        raise EmailDeliveryError(f"Resend request failed: {e}") from e
    finally:
        await client.aclose()

    if resp.status_code >= 400:
        raise EmailDeliveryError(f"Resend returned HTTP {resp.status_code}: {resp.text}")
    return resp.json().get("id")


async def dispatch_pending_notifications(
    session_factory: async_sessionmaker = AsyncSessionLocal,
    limit: int = 50,
) -> dict:
    counts = {"sent": 0, "failed": 0, "skipped": 0}
    async with session_factory() as db:
        pending = list(await db.scalars(
            select(Notification)
            .where(Notification.email_status == EmailStatus.queued)
            .order_by(Notification.created_at)
            .limit(limit)
        ))
        for notification in pending:
            if not notification.email_to or not settings.RESEND_API_KEY:
                notification.email_status = EmailStatus.skipped
                counts["skipped"] += 1
                continue
            notification.attempts = (notification.attempts or 0) + 1
            try:
                await send_email(notification.email_to, notification.email_subject, notification.email_html)
            except EmailDeliveryError as e:
                logger.warning("Email %s to %s failed (attempt %s): %s",
                               notification.id, notification.email_to, notification.attempts, e)
                notification.last_error = str(e)
                if notification.attempts >= MAX_EMAIL_ATTEMPTS:
                    notification.email_status = EmailStatus.failed
                    counts["failed"] += 1
                continue
            notification.email_status = EmailStatus.sent
            notification.sent_at = datetime.utcnow()
            counts["sent"] += 1
        await db.commit()

    if any(counts.values()):
        logger.info("Notification dispatch: %s", counts)
    return counts
