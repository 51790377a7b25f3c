"""Thin adapters over the Stripe and Paystack payout APIs.

Both adapters expose ``create_payout(amount, currency, destination,
reference, idempotency_key)`` and raise ``ProviderError`` for anything that
goes wrong on the provider side, so the processor only has one failure type
to record.

``reference`` identifies the payout and never changes. ``idempotency_key``
identifies one attempt at paying it and defaults to the reference.
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Protocol
import httpx
import stripe
from chainfundit.config import settings
from chainfundit.core.exceptions import ProviderError
from chainfundit.services.payout_routing import STRIPE, PAYSTACK

logger = logging.getLogger(__name__)

# Currencies Stripe expects in whole units rather than cents.
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND", "CLP", "XOF", "XAF"})

# Paystack recipient type per currency
PAYSTACK_RECIPIENT_TYPES = {
    "NGN": "nuban",
    "GHS": "ghipss",
    "ZAR": "basa",
    "KES": "mobile_money",
}

IBAN_PATTERN = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]+$")


@dataclass
class PayoutDestination:
    account_name: str
    account_number: Optional[str] = None
    bank_code: Optional[str] = None
    bank_name: Optional[str] = None
    bank_country: Optional[str] = None
    routing_number: Optional[str] = None
    swift_bic: Optional[str] = None
    # Paystack recipient code or Stripe external account id from an earlier attempt
    recipient_code: Optional[str] = None

    @classmethod
    def from_payout(cls, payout) -> "PayoutDestination":
        return cls(
            account_name=payout.account_name or "Account holder",
            account_number=payout.account_number,
            bank_code=payout.bank_code,
            bank_name=payout.bank_name,
            bank_country=payout.bank_country,
            routing_number=payout.routing_number,
            swift_bic=payout.swift_bic,
            recipient_code=payout.recipient_code,
        )


@dataclass
class PayoutResult:
    transaction_id: str
    recipient_code: Optional[str] = None
    status: Optional[str] = None


class PayoutAdapter(Protocol):
    name: str

    async def create_payout(
        self,
        amount: Decimal,
        currency: str,
        destination: PayoutDestination,
        reference: str,
        idempotency_key: Optional[str] = None,
    ) -> PayoutResult:
        ...


def to_minor_units(amount: Decimal, currency: str) -> int:
    amount = Decimal(str(amount))
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripePayoutAdapter:
    """Pays out to a bank account attached to the platform Stripe account.

    The Stripe SDK is synchronous, so calls run in a worker thread.
    """

    name = STRIPE

    def __init__(self, api_key: str = "", platform_account_id: str = "", api_version: str = ""):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.platform_account_id = platform_account_id or settings.STRIPE_PLATFORM_ACCOUNT_ID
        self.api_version = api_version or settings.STRIPE_API_VERSION

    def _bank_account_params(self, destination: PayoutDestination, currency: str) -> dict:
        country = (destination.bank_country or "").upper()
        account_number = (destination.account_number or "").replace(" ", "").upper()
        params = {
            "object": "bank_account",
            "country": country.lower(),
            "currency": currency.lower(),
            "account_holder_name": destination.account_name,
            "account_holder_type": "individual",
        }
        if IBAN_PATTERN.match(account_number) and country not in ("US", "GB"):
            params["account_number"] = account_number
        elif country == "US" and destination.routing_number:
            params["routing_number"] = destination.routing_number
            params["account_number"] = account_number
        elif country == "GB":
            # UK details are stored as sort code followed by account number
            digits = re.sub(r"\D", "", account_number)
            if len(digits) > 8:
                params["routing_number"] = digits[:6]
                params["account_number"] = digits[6:]
            else:
                params["routing_number"] = destination.routing_number
                params["account_number"] = digits
        else:
            params["account_number"] = account_number
        return params

    def _create_external_account(self, destination: PayoutDestination, currency: str) -> str:
        if not self.platform_account_id:
            raise ProviderError("Stripe platform account is not configured", provider=STRIPE)
        external_account = stripe.Account.create_external_account(
            self.platform_account_id,
            external_account=self._bank_account_params(destination, currency),
            api_key=self.api_key,
            stripe_version=self.api_version,
        )
        return external_account["id"]

    def _create_payout(
        self, amount: Decimal, currency: str, external_account_id: str, reference: str, idempotency_key: str
    ):
        return stripe.Payout.create(
            amount=to_minor_units(amount, currency),
            currency=currency.lower(),
            destination=external_account_id,
            description=f"ChainFundIt payout {reference}",
            metadata={"reference": reference},
            idempotency_key=idempotency_key,
            api_key=self.api_key,
            stripe_version=self.api_version,
        )

    async def create_payout(
        self,
        amount: Decimal,
        currency: str,
        destination: PayoutDestination,
        reference: str,
        idempotency_key: Optional[str] = None,
    ) -> PayoutResult:
        # Stripe replays the stored response for a reused key, errors included
        idempotency_key = idempotency_key or reference
        external_account_id = destination.recipient_code
        try:
            if not external_account_id:
                external_account_id = await asyncio.to_thread(
                    self._create_external_account, destination, currency
                )
            payout = await asyncio.to_thread(
                self._create_payout, amount, currency, external_account_id, reference, idempotency_key
            )
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            raise ProviderError(
                f"Stripe payout failed: {message}",
                provider=STRIPE,
                recipient_code=external_account_id,
            ) from e

        logger.info("Stripe payout %s created for %s (%s %s)", payout["id"], reference, amount, currency)
        return PayoutResult(
            transaction_id=payout["id"],
            recipient_code=external_account_id,
            status=payout.get("status"),
        )


class PaystackPayoutAdapter:
    name = PAYSTACK

    def __init__(self, secret_key: str = "", base_url: str = "", timeout: float = 30.0):
        self.secret_key = secret_key or settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        client = httpx.AsyncClient(timeout=self.timeout)
        try:
            resp = await client.request(
                method,
                f"{self.base_url}{path}",
                headers={"Authorization": f"Bearer {self.secret_key}"},
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Paystack request failed: {e}", provider=PAYSTACK) from e
        finally:
            await client.aclose()

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400 or not data.get("status"):
            message = data.get("message") or f"HTTP {resp.status_code}"
            raise ProviderError(f"Paystack error: {message}", provider=PAYSTACK, response=data)
        return data

    async def create_recipient(self, account_name: str, account_number: str, bank_code: str, currency: str) -> str:
        data = await self._request("POST", "/transferrecipient", json={
            "type": PAYSTACK_RECIPIENT_TYPES.get(currency.upper(), "nuban"),
            "name": account_name,
            "account_number": account_number,
            "bank_code": bank_code,
            "currency": currency.upper(),
        })
        return data["data"]["recipient_code"]

    async def initiate_transfer(
        self,
        amount: Decimal,
        recipient_code: str,
        reason: str,
        currency: str,
        reference: str,
    ) -> dict:
        data = await self._request("POST", "/transfer", json={
            "source": "balance",
            "amount": to_minor_units(amount, currency),
            "recipient": recipient_code,
            "reason": reason,
            "currency": currency.upper(),
            "reference": reference,
        })
        return data["data"]

    async def verify_transfer(self, reference: str) -> dict:
        data = await self._request("GET", f"/transfer/verify/{reference}")
        return data["data"]

    async def list_banks(self, currency: str = "NGN") -> list[dict]:
        data = await self._request("GET", "/bank", params={"currency": currency.upper()})
        return [
            {"name": b["name"], "code": b["code"], "slug": b.get("slug")}
            for b in data.get("data", [])
            if b.get("active", True)
        ]

    async def create_payout(
        self,
        amount: Decimal,
        currency: str,
        destination: PayoutDestination,
        reference: str,
        idempotency_key: Optional[str] = None,
    ) -> PayoutResult:
        # Paystack dedupes on the transfer reference, so every attempt reuses it
        # and idempotency_key is not sent.
        recipient_code = destination.recipient_code
        if not recipient_code:
            recipient_code = await self.create_recipient(
                destination.account_name,
                destination.account_number,
                destination.bank_code,
                currency,
            )

        try:
            transfer = await self.initiate_transfer(
                amount, recipient_code, f"ChainFundIt payout {reference}", currency, reference,
            )
        except ProviderError as e:
            e.recipient_code = recipient_code
            raise
        status = transfer.get("status")
        if status in ("failed", "reversed", "abandoned"):
            raise ProviderError(
                f"Paystack transfer {status}",
                provider=PAYSTACK,
                response=transfer,
                recipient_code=recipient_code,
            )
        if status == "otp":
            raise ProviderError(
                "Paystack transfer is awaiting OTP finalization",
                provider=PAYSTACK,
                response=transfer,
                recipient_code=recipient_code,
            )

        logger.info("Paystack transfer %s queued for %s (%s %s)", transfer.get("transfer_code"), reference, amount, currency)
        return PayoutResult(
            transaction_id=transfer.get("transfer_code") or transfer.get("reference") or reference,
            recipient_code=recipient_code,
            status=status,
        )


def build_adapters() -> dict[str, PayoutAdapter]:
    return {
        STRIPE: StripePayoutAdapter(),
        PAYSTACK: PaystackPayoutAdapter(),
    }
