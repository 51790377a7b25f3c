from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType
from typing import Literal, Mapping, Optional

PayoutProvider = Literal["stripe", "paystack"]

STRIPE = "stripe"
PAYSTACK = "paystack"

# Currency -> payout provider. International currencies settle through
# Stripe, African currencies through Paystack transfers.
PAYOUT_PROVIDER_MAPPING: Mapping[str, PayoutProvider] = MappingProxyType({
    "USD": STRIPE,
    "EUR": STRIPE,
    "GBP": STRIPE,
    "CAD": STRIPE,
    "AUD": STRIPE,
    "CHF": STRIPE,
    "JPY": STRIPE,
    "SGD": STRIPE,
    "HKD": STRIPE,
    "NZD": STRIPE,

    "NGN": PAYSTACK,
    "GHS": PAYSTACK,
    "ZAR": PAYSTACK,
    "KES": PAYSTACK,
})

PAYOUT_CONFIG = MappingProxyType({
    STRIPE: {
        "name": "Stripe Connect",
        "description": "Direct bank transfer to your account",
        "min_payout_amount": Decimal("1.00"),
        "processing_time": "2-7 business days",
        "fee_rate": Decimal("0.025"),
        "fixed_fee": Decimal("0.30"),
    },
    PAYSTACK: {
        "name": "Paystack Transfers",
        "description": "Direct bank transfer to your local bank account",
        "min_payout_amount": Decimal("100.00"),
        "processing_time": "1-3 business days",
        "fee_rate": Decimal("0.015"),
        "fixed_fee": Decimal("0"),
    },
})

CENTS = Decimal("0.01")


def route(currency: Optional[str], mapping: Mapping[str, PayoutProvider] = PAYOUT_PROVIDER_MAPPING) -> Optional[PayoutProvider]:
    """Return the provider that pays out ``currency``, or None if nobody does."""
    if not currency:
        return None
    return mapping.get(currency.strip().upper())


def is_payout_supported(currency: Optional[str]) -> bool:
    return route(currency) is not None


def supported_currencies() -> list[str]:
    return sorted(PAYOUT_PROVIDER_MAPPING)


def get_payout_config(provider: str) -> dict:
    return dict(PAYOUT_CONFIG[provider])


def calculate_fees(amount: Decimal, provider: str) -> tuple[Decimal, Decimal]:
    """Return ``(fees, net_amount)`` for a payout of ``amount``.

    Fees are rounded to cents and ``net_amount`` is always
    ``amount - fees``.
    """
    config = PAYOUT_CONFIG[provider]
    gross = Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)
    fees = (gross * config["fee_rate"] + config["fixed_fee"]).quantize(CENTS, rounding=ROUND_HALF_UP)
    return fees, gross - fees
