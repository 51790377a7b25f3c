from typing import Optional
from fastapi import APIRouter, Request
from chainfundit.services.currency import currency_symbol, detect_currency, fetch_exchange_rates
from chainfundit.services.payout_routing import route

router = APIRouter(prefix="/api/currency", tags=["currency"])


@router.get("/detect")
async def detect(request: Request, ip: Optional[str] = None):
    """Default currency for the caller, based on where the request comes from."""
    forwarded = request.headers.get("x-forwarded-for", "")
    client_ip = ip or forwarded.split(",")[0].strip() or (request.client.host if request.client else None)
    code = await detect_currency(client_ip)
    return {
        "currency": code,
        "symbol": currency_symbol(code),
        "payout_provider": route(code),
    }


@router.get("/rates")
async def rates(base: str = "NGN"):
    table = await fetch_exchange_rates(base)
    return {"base": base.upper(), "rates": {code: float(rate) for code, rate in sorted(table.items())}}
