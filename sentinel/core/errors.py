from __future__ import annotations


class SentinelError(Exception):
    """Base error for Guest Sentinel."""


class ConfigurationError(SentinelError):
    """Missing or invalid configuration."""


class DirectoryError(SentinelError):
    """Directory (Slack) API failure."""


class DirectoryApiError(DirectoryError):
    """The directory API answered with ok=false."""

    def __init__(self, method: str, code: str) -> None:
        super().__init__(f"{method} failed: {code}")
        self.method = method
        self.code = code


class DirectoryUnavailableError(DirectoryError):
    """Retries exhausted against rate limits or network failures."""


class SignatureVerificationError(SentinelError):
    """A signed inbound payload failed verification."""


class BillingError(SentinelError):
    """Payment processor reconciliation failure."""


class UnknownPriceError(BillingError):
    """An active-equivalent subscription references an unrecognized price id."""

    def __init__(self, price_id: str | None, subscription_id: str | None) -> None:
        super().__init__(
            f"Unrecognized price id {price_id!r} on active subscription {subscription_id!r}"
        )
        self.price_id = price_id
        self.subscription_id = subscription_id


class PaymentProcessorError(BillingError):
    """Payment processor API request failed."""
