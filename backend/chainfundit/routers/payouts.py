from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from chainfundit.database import get_db
from chainfundit.core.deps import get_current_user
from chainfundit.core.exceptions import PayoutError
from chainfundit.models.user import User
from chainfundit.models.campaign import Campaign, Chainer
from chainfundit.models.payout import CampaignPayout, CommissionPayout
from chainfundit.schemas.payout import PayoutRequest, CommissionPayoutRequest, payout_to_dict
from chainfundit.services import payout_requests
from chainfundit.services.currency import currency_code, convert_to_naira
from chainfundit.services.notifications import enqueue_payout_request_alert
from chainfundit.services.payout_routing import get_payout_config, route

router = APIRouter(prefix="/api/payouts", tags=["payouts"])


def _config_view(provider):
    if not provider:
        return None
    config = get_payout_config(provider)
    return {
        "name": config["name"],
        "description": config["description"],
        "min_payout_amount": float(config["min_payout_amount"]),
        "processing_time": config["processing_time"],
    }


@router.get("")
async def payout_dashboard(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Caller's campaigns with what can be paid out and through whom."""
    campaigns = list(await db.scalars(
        select(Campaign).where(Campaign.creator_id == user.id).order_by(Campaign.created_at.desc())
    ))
    result = []
    for c in campaigns:
        code = currency_code(c.currency)
        provider = route(code)
        total_raised = await payout_requests.campaign_total_raised(db, c)
        reserved = await payout_requests.campaign_reserved_amount(db, c.id)
        active = await payout_requests.active_campaign_payout(db, c.id)
        goal = float(c.goal_amount or 0)
        result.append({
            "id": str(c.id),
            "title": c.title,
            "currency_code": code,
            "goal_amount": goal,
            "total_raised": float(total_raised),
            "total_raised_ngn": float(convert_to_naira(total_raised, code)),
            "goal_progress": float(total_raised) / goal * 100 if goal > 0 else 0.0,
            "available_amount": float(max(total_raised - reserved, 0)),
            "payout_supported": provider is not None,
            "payout_provider": provider,
            "payout_config": _config_view(provider),
            "available_for_payout": provider is not None and total_raised > reserved and active is None,
            "active_payout": {
                "id": str(active.id),
                "status": active.status,
                "requested_amount": float(active.requested_amount),
            } if active else None,
        })
    return result


@router.post("", status_code=201)
async def request_payout(
    body: PayoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Creator requests a payout from a campaign. Goes to admin for approval."""
    campaign = await db.scalar(
        select(Campaign).where(Campaign.id == body.campaign_id, Campaign.creator_id == user.id)
    )
    if not campaign:
        raise HTTPException(404, "Campaign not found or unauthorized")

    try:
        payout = await payout_requests.create_campaign_payout(
            db, user, campaign, body.amount, body.currency, body.payout_provider,
        )
    except payout_requests.AccountLocked as e:
        raise HTTPException(403, str(e))
    except payout_requests.ActivePayoutExists as e:
        raise HTTPException(409, str(e))
    except PayoutError as e:
        raise HTTPException(400, str(e))

    await enqueue_payout_request_alert(db, payout, user)
    await db.commit()
    await db.refresh(payout)
    config = get_payout_config(payout.payout_provider)
    return {
        **payout_to_dict(payout),
        "estimated_delivery": config["processing_time"],
        "message": f"Payout of {payout.currency} {payout.requested_amount} requested via {payout.payout_provider}",
    }


@router.post("/commission", status_code=201)
async def request_commission_payout(
    body: CommissionPayoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    chainer = await db.scalar(
        select(Chainer).where(Chainer.id == body.chainer_id, Chainer.user_id == user.id)
    )
    if not chainer:
        raise HTTPException(404, "Chainer not found")

    try:
        payout = await payout_requests.create_commission_payout(db, user, chainer, body.amount)
    except payout_requests.AccountLocked as e:
        raise HTTPException(403, str(e))
    except PayoutError as e:
        raise HTTPException(400, str(e))

    await enqueue_payout_request_alert(db, payout, user)
    await db.commit()
    await db.refresh(payout)
    return payout_to_dict(payout)


@router.get("/history")
async def payout_history(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Caller's campaign and commission payouts, newest first."""
    campaign_payouts = list(await db.scalars(
        select(CampaignPayout).where(CampaignPayout.user_id == user.id)
        .order_by(CampaignPayout.created_at.desc()).limit(50)
    ))
    commission_payouts = list(await db.scalars(
        select(CommissionPayout)
        .join(Chainer, Chainer.id == CommissionPayout.chainer_id)
        .where(Chainer.user_id == user.id)
        .order_by(CommissionPayout.created_at.desc()).limit(50)
    ))
    return {
        "campaign": [payout_to_dict(p) for p in campaign_payouts],
        "commission": [payout_to_dict(p) for p in commission_payouts],
    }
