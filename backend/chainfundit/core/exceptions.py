class PayoutError(Exception):
    """Base class for payout pipeline errors.

    ``code`` is persisted on the payout row as ``failure_code`` so the
    retry sweeper can tell fatal failures from transient ones.
    """

    code = "payout_error"
    retryable = False


class PayoutNotFoundError(PayoutError):
    code = "not_found"


class InvalidStateError(PayoutError):
    code = "invalid_state"

    def __init__(self, payout_id, status: str, expected: str):
        super().__init__(f"Payout {payout_id} is {status!r}, expected {expected!r}")
        self.payout_id = payout_id
        self.status = status
        self.expected = expected


class UnsupportedCurrencyError(PayoutError):
    code = "unsupported_currency"

    def __init__(self, currency: str):
        super().__init__(f"No payout provider available for currency {currency}")
        self.currency = currency


class ValidationError(PayoutError):
    code = "validation"


class ProviderError(PayoutError):
    code = "provider_error"
    retryable = True

    def __init__(
        self,
        message: str,
        provider: str = "",
        response: dict | None = None,
        recipient_code: str | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.response = response or {}
        # Recipient or external account created before the failure, reused on retry
        self.recipient_code = recipient_code


class EmailDeliveryError(Exception):
    pass


NON_RETRYABLE_FAILURE_CODES = (UnsupportedCurrencyError.code, ValidationError.code)
