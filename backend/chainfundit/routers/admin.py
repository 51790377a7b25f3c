import uuid
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc, update
from chainfundit.database import get_db
from chainfundit.core.deps import require_admin, get_payout_processor
from chainfundit.core.exceptions import InvalidStateError, PayoutNotFoundError
from chainfundit.models.user import User
from chainfundit.models.payout import PAYOUT_MODELS, PayoutStatus, PayoutType
from chainfundit.schemas.payout import (
    ApproveRequest,
    BulkActionRequest,
    NotesRequest,
    RejectRequest,
    payout_to_dict,
)
from chainfundit.services.notifications import enqueue_payout_approved
from chainfundit.services.payout_processor import PayoutProcessor
from chainfundit.services.payout_sweeper import retry_payout

router = APIRouter(prefix="/api/admin/payouts", tags=["admin"])

APPROVABLE_STATUSES = (PayoutStatus.pending,)
# Failed payouts can be closed out when the data behind them cannot be fixed
REJECTABLE_STATUSES = (PayoutStatus.pending, PayoutStatus.failed)


def _model(payout_type: str):
    if payout_type not in PAYOUT_MODELS:
        raise HTTPException(404, f"Unknown payout type {payout_type}")
    return PAYOUT_MODELS[payout_type]


async def _get_payout(db: AsyncSession, payout_type: str, payout_id: uuid.UUID):
    payout = await db.get(_model(payout_type), payout_id)
    if not payout:
        raise HTTPException(404, "Payout not found")
    return payout


async def _transition(db: AsyncSession, payout, allowed: tuple, **values) -> None:
    """Write ``values`` only if the row is still in one of ``allowed``.

    The status check runs in the UPDATE itself, so a payout the processor
    or sweeper moved on since it was loaded is left alone.
    """
    model = type(payout)
    res = await db.execute(
        update(model)
        .where(model.id == payout.id, model.status.in_(allowed))
        .values(updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(payout)
    if res.rowcount != 1:
        raise InvalidStateError(payout.id, payout.status, " or ".join(allowed))


async def _approve(db: AsyncSession, payout, admin: User, notes: Optional[str] = None):
    values = dict(status=PayoutStatus.approved, approved_by=admin.id, approved_at=datetime.utcnow())
    if notes:
        values["notes"] = f"{payout.notes}\n{notes}" if payout.notes else notes
    await _transition(db, payout, APPROVABLE_STATUSES, **values)
    await enqueue_payout_approved(db, payout)


async def _reject(db: AsyncSession, payout, reason: str):
    await _transition(db, payout, REJECTABLE_STATUSES, status=PayoutStatus.rejected, rejection_reason=reason)


@router.get("")
async def list_payouts(
    type: str = PayoutType.campaign,
    status: str = "all",
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    model = _model(type)
    query = select(model)
    if status != "all":
        query = query.where(model.status == status)
    payouts = list(await db.scalars(query.order_by(desc(model.created_at)).limit(200)))
    return [payout_to_dict(p, admin=True) for p in payouts]


@router.get("/stats")
async def payout_stats(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    stats = {}
    for payout_type, model in PAYOUT_MODELS.items():
        rows = await db.execute(
            select(model.status, model.currency, func.count(model.id), func.sum(model.net_amount))
            .group_by(model.status, model.currency)
        )
        by_status = {}
        for status, currency, count, total in rows:
            entry = by_status.setdefault(status, {"count": 0, "net_amount": {}})
            entry["count"] += count
            entry["net_amount"][currency] = float(total or 0)
        stats[payout_type] = by_status
    return stats


@router.post("/bulk")
async def bulk_action(
    body: BulkActionRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if body.action == "reject" and not body.reason:
        raise HTTPException(400, "Rejection reason is required")

    model = _model(body.type)
    updated, skipped = [], []
    for payout_id in body.ids:
        payout = await db.get(model, payout_id)
        if not payout:
            skipped.append({"id": str(payout_id), "reason": "not found"})
            continue
        try:
            if body.action == "approve":
                await _approve(db, payout, admin)
            else:
                await _reject(db, payout, body.reason)
        except InvalidStateError as e:
            skipped.append({"id": str(payout_id), "reason": str(e)})
            continue
        updated.append(str(payout_id))
    await db.commit()
    return {"updated": updated, "skipped": skipped}


@router.get("/{payout_type}/{payout_id}")
async def get_payout(
    payout_type: str,
    payout_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payout = await _get_payout(db, payout_type, payout_id)
    return payout_to_dict(payout, admin=True)


@router.put("/{payout_type}/{payout_id}/approve")
async def approve_payout(
    payout_type: str,
    payout_id: uuid.UUID,
    body: ApproveRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    processor: PayoutProcessor = Depends(get_payout_processor),
):
    """Approve a pending payout; with ``process`` set, pay it out right away."""
    payout = await _get_payout(db, payout_type, payout_id)
    try:
        await _approve(db, payout, admin, body.notes)
    except InvalidStateError as e:
        raise HTTPException(409, str(e))
    await db.commit()

    response = {"message": "Payout approved", "payout": payout_to_dict(payout, admin=True)}
    if body.process:
        try:
            result = await processor.process(db, payout_type, payout.id)
        except PayoutNotFoundError:
            raise HTTPException(404, "Payout not found")
        except InvalidStateError as e:
            raise HTTPException(409, str(e))
        response["processing"] = result.as_dict()
        response["payout"] = payout_to_dict(payout, admin=True)
    return response


@router.put("/{payout_type}/{payout_id}/reject")
async def reject_payout(
    payout_type: str,
    payout_id: uuid.UUID,
    body: RejectRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payout = await _get_payout(db, payout_type, payout_id)
    try:
        await _reject(db, payout, body.reason)
    except InvalidStateError as e:
        raise HTTPException(409, str(e))
    await db.commit()
    return {"message": "Payout rejected", "payout": payout_to_dict(payout, admin=True)}


@router.post("/{payout_type}/{payout_id}/process")
async def process_payout(
    payout_type: str,
    payout_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    processor: PayoutProcessor = Depends(get_payout_processor),
):
    _model(payout_type)
    try:
        result = await processor.process(db, payout_type, payout_id)
    except PayoutNotFoundError:
        raise HTTPException(404, "Payout not found")
    except InvalidStateError as e:
        raise HTTPException(409, str(e))
    return result.as_dict()


@router.post("/{payout_type}/{payout_id}/retry")
async def retry_failed_payout(
    payout_type: str,
    payout_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    processor: PayoutProcessor = Depends(get_payout_processor),
):
    _model(payout_type)
    try:
        result = await retry_payout(db, processor, payout_type, payout_id)
    except PayoutNotFoundError:
        raise HTTPException(404, "Payout not found")
    except InvalidStateError as e:
        raise HTTPException(409, str(e))
    return result.as_dict()


@router.put("/{payout_type}/{payout_id}/notes")
async def update_notes(
    payout_type: str,
    payout_id: uuid.UUID,
    body: NotesRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payout = await _get_payout(db, payout_type, payout_id)
    payout.notes = body.notes
    await db.commit()
    return {"message": "Notes updated"}
