from fastapi import APIRouter, HTTPException, Query
from chainfundit.core.exceptions import ProviderError
from chainfundit.services.payout_providers import PaystackPayoutAdapter, PAYSTACK_RECIPIENT_TYPES

router = APIRouter(prefix="/api/banks", tags=["banks"])


@router.get("")
async def list_banks(currency: str = Query("NGN", min_length=3, max_length=3)):
    """Banks Paystack can pay out to in ``currency``."""
    if currency.upper() not in PAYSTACK_RECIPIENT_TYPES:
        raise HTTPException(400, f"Bank list not available for {currency}")
    try:
        banks = await PaystackPayoutAdapter().list_banks(currency)
    except ProviderError as e:
        raise HTTPException(502, str(e))
    return {"currency": currency.upper(), "banks": banks}
