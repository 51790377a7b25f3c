from unittest.mock import AsyncMock, MagicMock, patch
import pytest
from sqlalchemy import select
from chainfundit.config import settings
from chainfundit.core.exceptions import EmailDeliveryError
from chainfundit.models.notification import EmailStatus, Notification
from chainfundit.models.payout import PayoutStatus, PayoutType
from chainfundit.services import notifications
from chainfundit.services.notifications import (
    MAX_EMAIL_ATTEMPTS,
    dispatch_pending_notifications,
    enqueue_payout_approved,
    enqueue_payout_completed,
    enqueue_payout_request_alert,
    send_email,
)


async def queued(db, email_to="ada@example.com", attempts=0):
    notification = Notification(
        type="payout_completed",
        title="Payout sent",
        body="Sent",
        email_to=email_to,
        email_subject="Payout Completed",
        email_html="<p>Sent</p>",
        attempts=attempts,
    )
    db.add(notification)
    await db.commit()
    return notification


@pytest.mark.asyncio
async def test_completed_notification_is_queued_for_owner(db, factory):
    user = await factory.user(full_name="Ada Obi")
    campaign = await factory.campaign(user)
    payout = await factory.payout(user, campaign, status=PayoutStatus.completed)

    notification = await enqueue_payout_completed(db, payout, PayoutType.campaign)
    await db.commit()

    assert notification.email_to == user.email
    assert notification.email_status == EmailStatus.queued
    assert notification.email_subject == "Payout Completed - ₦9,850.00 - ChainFundIt"
    assert "Ada Obi" in notification.email_html
    assert "******6789" in notification.email_html
    assert "0123456789" not in notification.email_html


@pytest.mark.asyncio
async def test_approved_notification_mentions_processing_time(db, factory):
    user = await factory.user()
    campaign = await factory.campaign(user)
    payout = await factory.payout(user, campaign, status=PayoutStatus.approved)

    notification = await enqueue_payout_approved(db, payout)

    assert notification.type == "payout_approved"
    assert "1-3 business days" in notification.body


@pytest.mark.asyncio
async def test_commission_notification_goes_to_chainer(db, factory):
    creator = await factory.user()
    chainer_user = await factory.user()
    campaign = await factory.campaign(creator)
    chainer = await factory.chainer(chainer_user, campaign)
    payout = await factory.commission_payout(chainer, status=PayoutStatus.completed)

    notification = await enqueue_payout_completed(db, payout, PayoutType.commission)

    assert notification.user_id == chainer_user.id
    assert notification.email_to == chainer_user.email


@pytest.mark.asyncio
async def test_request_alert_needs_admin_address(db, factory, monkeypatch):
    user = await factory.user()
    campaign = await factory.campaign(user)
    payout = await factory.payout(user, campaign, status=PayoutStatus.pending)

    assert await enqueue_payout_request_alert(db, payout, user) is None

    monkeypatch.setattr(settings, "ADMIN_ALERT_EMAIL", "ops@chainfundit.com")
    notification = await enqueue_payout_request_alert(db, payout, user)
    assert notification.email_to == "ops@chainfundit.com"
    assert notification.user_id is None


@pytest.mark.asyncio
async def test_dispatch_sends_queued_emails(db, session_factory, monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    notification = await queued(db)

    with patch.object(notifications, "send_email", AsyncMock(return_value="em_1")) as send:
        counts = await dispatch_pending_notifications(session_factory)

    assert counts == {"sent": 1, "failed": 0, "skipped": 0}
    send.assert_awaited_once_with("ada@example.com", "Payout Completed", "<p>Sent</p>")
    await db.refresh(notification)
    assert notification.email_status == EmailStatus.sent
    assert notification.sent_at is not None
    assert notification.attempts == 1


@pytest.mark.asyncio
async def test_dispatch_skips_without_api_key(db, session_factory):
    notification = await queued(db)

    with patch.object(notifications, "send_email", AsyncMock()) as send:
        counts = await dispatch_pending_notifications(session_factory)

    assert counts["skipped"] == 1
    send.assert_not_called()
    await db.refresh(notification)
    assert notification.email_status == EmailStatus.skipped


@pytest.mark.asyncio
async def test_dispatch_failure_stays_queued_until_attempts_run_out(db, session_factory, monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    retrying = await queued(db)
    exhausted = await queued(db, email_to="bo@example.com", attempts=MAX_EMAIL_ATTEMPTS - 1)

    with patch.object(notifications, "send_email", AsyncMock(side_effect=EmailDeliveryError("HTTP 500"))):
        counts = await dispatch_pending_notifications(session_factory)

    assert counts == {"sent": 0, "failed": 1, "skipped": 0}
    await db.refresh(retrying)
    await db.refresh(exhausted)
    assert retrying.email_status == EmailStatus.queued
    assert retrying.attempts == 1
    assert retrying.last_error == "HTTP 500"
    assert exhausted.email_status == EmailStatus.failed


@pytest.mark.asyncio
async def test_send_email_posts_to_resend(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    mock_response = MagicMock()
    mock_response.status_code = 200
    mock_response.json.return_value = {"id": "em_123"}

    with patch("chainfundit.services.notifications.httpx.AsyncClient") as MockClient:
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(return_value=mock_response)
        mock_client.aclose = AsyncMock()
        MockClient.return_value = mock_client

        message_id = await send_email("ada@example.com", "Hello", "<p>Hi</p>")

    assert message_id == "em_123"
    url = mock_client.post.await_args.args[0]
    assert url == "https://api.resend.com/emails"
    body = mock_client.post.await_args.kwargs["json"]
    assert body["to"] == ["ada@example.com"]
    assert mock_client.post.await_args.kwargs["headers"]["Authorization"] == "Bearer re_test"


@pytest.mark.asyncio
async def test_send_email_error_status_raises():
    mock_response = MagicMock()
    mock_response.status_code = 422
    mock_response.text = "invalid from address"

    with patch("chainfundit.services.notifications.httpx.AsyncClient") as MockClient:
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(return_value=mock_response)
        mock_client.aclose = AsyncMock()
        MockClient.return_value = mock_client

        with pytest.raises(EmailDeliveryError, match="422"):
            await send_email("ada@example.com", "Hello", "<p>Hi</p>")
