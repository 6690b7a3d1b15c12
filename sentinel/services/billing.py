"""Stripe access — webhook signature verification and subscription lookup."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any

import httpx

from sentinel.core.errors import PaymentProcessorError, SignatureVerificationError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.stripe.com/v1"
SIGNATURE_TOLERANCE_SECONDS = 300


def compute_stripe_signature(secret: str, timestamp: int | str, payload: bytes) -> str:
    signed = str(timestamp).encode() + b"." + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def _parse_signature_header(header: str) -> tuple[int, list[str]]:
    timestamp: int | None = None
    signatures: list[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError as exc:
                raise SignatureVerificationError("Malformed signature timestamp") from exc
        elif key == "v1" and value:
            signatures.append(value)
    if timestamp is None or not signatures:
        raise SignatureVerificationError("Signature header lacks timestamp or v1 signature")
    return timestamp, signatures


def construct_event(
    payload: bytes,
    signature_header: str | None,
    secret: str,
    *,
    tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
    now: float | None = None,
) -> dict[str, Any]:
    """Verify a ``Stripe-Signature`` header, then parse the payload.

    Nothing in the body is read before the signature checks out.
    """
    if not signature_header:
        raise SignatureVerificationError("Missing Stripe-Signature header")
    timestamp, signatures = _parse_signature_header(signature_header)

    expected = compute_stripe_signature(secret, timestamp, payload)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise SignatureVerificationError("No signature matches the payload")

    now = time.time() if now is None else now
    if tolerance and abs(now - timestamp) > tolerance:
        raise SignatureVerificationError("Signature timestamp outside tolerance")

    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise SignatureVerificationError("Signed payload is not valid JSON") from exc
    if not isinstance(event, dict) or "id" not in event or "type" not in event:
        raise SignatureVerificationError("Signed payload is not an event")
    return event


class PaymentClient:
    """Minimal Stripe REST client over an injected ``httpx.AsyncClient``."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        secret_key: str,
        *,
        api_url: str = DEFAULT_API_URL,
    ) -> None:
        self._http = http
        self._secret_key = secret_key
        self._api_url = api_url.rstrip("/")

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        try:
            response = await self._http.get(
                f"{self._api_url}/subscriptions/{subscription_id}",
                headers={"Authorization": f"Bearer {self._secret_key}"},
            )
        except httpx.HTTPError as exc:
            raise PaymentProcessorError(
                f"Subscription lookup failed for {subscription_id}"
            ) from exc
        if response.status_code >= 400:
            raise PaymentProcessorError(
                f"Subscription lookup for {subscription_id} returned {response.status_code}"
            )
        return response.json()


def first_price_id(subscription: dict[str, Any]) -> str | None:
    """Price id of the first subscription item, if any."""
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")
