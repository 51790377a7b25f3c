import uuid
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field
from chainfundit.models.payout import CampaignPayout, PayoutStatus

class PayoutRequest(BaseModel):
    campaign_id: uuid.UUID
    amount: Decimal = Field(gt=0, decimal_places=2)
    currency: Optional[str] = None
    payout_provider: Optional[str] = None

class CommissionPayoutRequest(BaseModel):
    chainer_id: uuid.UUID
    amount: Decimal = Field(gt=0, decimal_places=2)

class ApproveRequest(BaseModel):
    process: bool = False
    notes: Optional[str] = None

class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)

class NotesRequest(BaseModel):
    notes: str = Field(min_length=1)

class BulkActionRequest(BaseModel):
    type: Literal["campaign", "commission"] = "campaign"
    action: Literal["approve", "reject"]
    ids: list[uuid.UUID] = Field(min_length=1, max_length=100)
    reason: Optional[str] = None


USER_FAILURE_MESSAGE = "We could not complete this payout. Our team has been notified and will retry it."


def _iso(value):
    return value.isoformat() if value else None


def payout_to_dict(payout, admin: bool = False) -> dict:
    """JSON view of a payout. Raw provider errors are admin-only."""
    data = {
        "id": str(payout.id),
        "type": "campaign" if isinstance(payout, CampaignPayout) else "commission",
        "campaign_id": str(payout.campaign_id),
        "requested_amount": float(payout.requested_amount),
        "gross_amount": float(payout.gross_amount),
        "fees": float(payout.fees),
        "net_amount": float(payout.net_amount),
        "currency": payout.currency,
        "status": payout.status,
        "payout_provider": payout.payout_provider,
        "reference": payout.reference,
        "bank_name": payout.bank_name,
        "account_name": payout.account_name,
        "account_number_last4": (payout.account_number or "")[-4:] or None,
        "transaction_id": payout.transaction_id,
        "rejection_reason": payout.rejection_reason,
        "created_at": _iso(payout.created_at),
        "approved_at": _iso(payout.approved_at),
        "processed_at": _iso(payout.processed_at),
    }
    if isinstance(payout, CampaignPayout):
        data["user_id"] = str(payout.user_id)
    else:
        data["chainer_id"] = str(payout.chainer_id)

    if admin:
        data.update({
            "account_number": payout.account_number,
            "bank_code": payout.bank_code,
            "bank_country": payout.bank_country,
            "failure_reason": payout.failure_reason,
            "failure_code": payout.failure_code,
            "retry_count": payout.retry_count,
            "notes": payout.notes,
            "approved_by": str(payout.approved_by) if payout.approved_by else None,
            "updated_at": _iso(payout.updated_at),
        })
    elif payout.status == PayoutStatus.failed:
        data["message"] = USER_FAILURE_MESSAGE
    return data
