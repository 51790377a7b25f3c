import logging
from decimal import Decimal
from typing import Optional
import httpx
from chainfundit.config import settings

logger = logging.getLogger(__name__)

# Currency names people type into the campaign form, mapped to ISO codes
CURRENCY_CODES = {
    "NAIRA": "NGN",
    "NAIRAS": "NGN",
    "US DOLLAR": "USD",
    "US DOLLARS": "USD",
    "DOLLAR": "USD",
    "DOLLARS": "USD",
    "BRITISH POUND": "GBP",
    "BRITISH POUNDS": "GBP",
    "POUND": "GBP",
    "POUNDS": "GBP",
    "EURO": "EUR",
    "EUROS": "EUR",
    "CANADIAN DOLLAR": "CAD",
    "CANADIAN DOLLARS": "CAD",
}

CURRENCY_SYMBOLS = {
    "USD": "$",
    "GBP": "£",
    "NGN": "₦",
    "EUR": "€",
    "CAD": "C$",
    "AUD": "A$",
    "GHS": "GH₵",
    "KES": "KSh",
    "ZAR": "R",
    "JPY": "¥",
}

# Matched as typed, since upper-casing "KSh" would yield the code "KSH"
SYMBOL_CODES = {symbol: code for code, symbol in CURRENCY_SYMBOLS.items()}

# Approximate rates to Naira, used whenever the live rate API is unavailable
RATES_TO_NGN = {
    "NGN": Decimal("1"),
    "USD": Decimal("1500"),
    "EUR": Decimal("1650"),
    "GBP": Decimal("1900"),
    "CAD": Decimal("1100"),
    "AUD": Decimal("1000"),
    "GHS": Decimal("120"),
    "KES": Decimal("10"),
    "ZAR": Decimal("80"),
    "EGP": Decimal("50"),
}

COUNTRY_CURRENCIES = {
    "NG": "NGN",
    "GH": "GHS",
    "ZA": "ZAR",
    "KE": "KES",
    "US": "USD",
    "GB": "GBP",
    "CA": "CAD",
    "AU": "AUD",
    "NZ": "NZD",
    "JP": "JPY",
    "CH": "CHF",
    "SG": "SGD",
    "HK": "HKD",
    "DE": "EUR", "FR": "EUR", "IT": "EUR", "ES": "EUR", "NL": "EUR",
    "BE": "EUR", "AT": "EUR", "IE": "EUR", "PT": "EUR", "FI": "EUR",
}

DEFAULT_CURRENCY = "USD"


def currency_code(value: Optional[str]) -> str:
    raw = (value or "").strip()
    if raw in SYMBOL_CODES:
        return SYMBOL_CODES[raw]
    normalized = raw.upper()
    if normalized in CURRENCY_CODES:
        return CURRENCY_CODES[normalized]
    if len(normalized) == 3 and normalized.isalpha():
        return normalized
    return DEFAULT_CURRENCY


def currency_symbol(code: Optional[str]) -> str:
    return CURRENCY_SYMBOLS.get(currency_code(code), "$")


def format_amount(amount, currency: Optional[str]) -> str:
    code = currency_code(currency)
    symbol = CURRENCY_SYMBOLS.get(code)
    value = Decimal(str(amount or 0))
    if symbol:
        return f"{symbol}{value:,.2f}"
    return f"{code} {value:,.2f}"


def convert_to_naira(amount, from_currency: str, rates: Optional[dict] = None) -> Decimal:
    rates = rates or RATES_TO_NGN
    return Decimal(str(amount)) * rates.get(currency_code(from_currency), Decimal("1"))


def convert_from_naira(amount, to_currency: str, rates: Optional[dict] = None) -> Decimal:
    rates = rates or RATES_TO_NGN
    return Decimal(str(amount)) / rates.get(currency_code(to_currency), Decimal("1"))


def conversion_rate(from_currency: str, to_currency: str = "NGN", rates: Optional[dict] = None) -> Decimal:
    rates = rates or RATES_TO_NGN
    source = currency_code(from_currency)
    target = currency_code(to_currency)
    if source == target:
        return Decimal("1")
    return rates.get(source, Decimal("1")) / rates.get(target, Decimal("1"))


def convert(amount, from_currency: str, to_currency: str, rates: Optional[dict] = None) -> Decimal:
    return Decimal(str(amount)) * conversion_rate(from_currency, to_currency, rates)


async def fetch_exchange_rates(base: str = "NGN") -> dict[str, Decimal]:
    """Rates expressed as "units of ``base`` per unit of currency".

    Falls back to the static table on any network or parsing problem.
    """
    base = currency_code(base)
    client = httpx.AsyncClient(timeout=settings.EXCHANGE_RATE_TIMEOUT)
    try:
        resp = await client.get(f"{settings.EXCHANGE_RATE_API_URL}/{base}")
        resp.raise_for_status()
        quoted = resp.json()["rates"]
        # The API quotes "currency per base"; invert to "base per currency".
        rates = {
            code: Decimal("1") / Decimal(str(rate))
            for code, rate in quoted.items()
            if rate
        }
        rates[base] = Decimal("1")
        return rates
    except (httpx.HTTPError, KeyError, ValueError, ArithmeticError) as e:
        logger.warning("Exchange rate fetch failed, using static rates: %s", e)
        if base == "NGN":
            return dict(RATES_TO_NGN)
        return {code: conversion_rate(code, base) for code in RATES_TO_NGN}
    finally:
        await client.aclose()


async def detect_currency(ip_address: Optional[str]) -> str:
    """Default currency for a visitor, from IP geolocation."""
    if not ip_address:
        return DEFAULT_CURRENCY
    client = httpx.AsyncClient(timeout=settings.EXCHANGE_RATE_TIMEOUT)
    try:
        resp = await client.get(f"{settings.GEOLOCATION_API_URL}/{ip_address}/json/")
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Geolocation lookup failed for %s: %s", ip_address, e)
        return DEFAULT_CURRENCY
    finally:
        await client.aclose()

    country = (data.get("country_code") or data.get("country") or "").upper()
    if country in COUNTRY_CURRENCIES:
        return COUNTRY_CURRENCIES[country]
    if data.get("currency"):
        return currency_code(data["currency"])
    return DEFAULT_CURRENCY
