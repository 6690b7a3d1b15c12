"""Directory client — Slack Web API access for guest audits.

Every call goes through ``DirectoryClient._call`` so rate-limit and network
retries behave the same for each endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from sentinel.core.errors import DirectoryApiError, DirectoryError, DirectoryUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://slack.com/api"

# Wait when a 429 carries no Retry-After header.
RATE_LIMIT_DEFAULT_WAIT_SECONDS = 10.0
# Wait before retrying after a network or 5xx error.
NETWORK_RETRY_DELAY_SECONDS = 2.0
MAX_RETRIES = 3

GUEST_LIST_PAGE_SIZE = 200
# Bounds for the message-history signal.
MAX_CHANNELS_CHECKED = 10
MESSAGES_PER_CHANNEL = 100

PRESENCE_ACTIVE = "active"
PRESENCE_AWAY = "away"


@dataclass(frozen=True)
class GuestRecord:
    """A guest-tier account as returned by ``users.list``."""

    id: str
    profile_updated_at: int  # unix seconds, 0 when unknown
    is_guest_tier: bool = True


def _is_guest(member: dict[str, Any]) -> bool:
    if member.get("deleted") or member.get("is_bot"):
        return False
    # is_restricted = multi-channel guest, is_ultra_restricted = single-channel guest
    return bool(member.get("is_restricted") or member.get("is_ultra_restricted"))


def _retry_after(response: httpx.Response) -> float:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return RATE_LIMIT_DEFAULT_WAIT_SECONDS
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return RATE_LIMIT_DEFAULT_WAIT_SECONDS


class DirectoryClient:
    """Thin async wrapper over the Slack Web API.

    The ``httpx.AsyncClient`` is injected so the caller owns its lifecycle;
    ``sleep`` is injectable so backoff can be observed in tests.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_url: str = DEFAULT_API_URL,
        max_retries: int = MAX_RETRIES,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._http = http
        self._api_url = api_url.rstrip("/")
        self._max_retries = max_retries
        self._sleep = sleep

    async def _call(
        self,
        method: str,
        token: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._api_url}/{method}"
        headers = {"Authorization": f"Bearer {token}"}
        attempt = 0
        while True:
            try:
                if body is not None:
                    response = await self._http.request(
                        "POST", url, headers=headers, params=params, json=body,
                    )
                else:
                    response = await self._http.request(
                        "GET", url, headers=headers, params=params,
                    )
            except httpx.TransportError as exc:
                if attempt >= self._max_retries:
                    raise DirectoryUnavailableError(
                        f"{method}: network error after {attempt} retries"
                    ) from exc
                attempt += 1
                logger.warning(
                    "Network error calling %s, retry %d/%d", method, attempt, self._max_retries,
                )
                await self._sleep(NETWORK_RETRY_DELAY_SECONDS)
                continue

            if response.status_code == 429:
                if attempt >= self._max_retries:
                    raise DirectoryUnavailableError(
                        f"{method}: still rate limited after {attempt} retries"
                    )
                attempt += 1
                wait = _retry_after(response)
                logger.warning(
                    "Rate limited on %s, waiting %.1fs (retry %d/%d)",
                    method, wait, attempt, self._max_retries,
                )
                await self._sleep(wait)
                continue

            if response.status_code >= 500:
                if attempt >= self._max_retries:
                    raise DirectoryUnavailableError(
                        f"{method}: http_{response.status_code} after {attempt} retries"
                    )
                attempt += 1
                logger.warning(
                    "Server error %d calling %s, retry %d/%d",
                    response.status_code, method, attempt, self._max_retries,
                )
                await self._sleep(NETWORK_RETRY_DELAY_SECONDS)
                continue

            try:
                data = response.json()
            except ValueError:
                data = None
            if not isinstance(data, dict):
                raise DirectoryApiError(method, f"http_{response.status_code}")
            if not data.get("ok"):
                raise DirectoryApiError(method, data.get("error", f"http_{response.status_code}"))
            return data

    # ── Guests ────────────────────────────────────────────────

    async def list_guest_accounts(self, token: str) -> list[GuestRecord]:
        """Return every active guest account, following cursors to the end."""
        guests: list[GuestRecord] = []
        cursor: str | None = None
        pages = 0
        while True:
            params: dict[str, Any] = {"limit": GUEST_LIST_PAGE_SIZE}
            if cursor:
                params["cursor"] = cursor
            data = await self._call("users.list", token, params=params)
            pages += 1
            for member in data.get("members") or []:
                if _is_guest(member):
                    guests.append(
                        GuestRecord(id=member["id"], profile_updated_at=int(member.get("updated") or 0))
                    )
            cursor = (data.get("response_metadata") or {}).get("next_cursor") or None
            if not cursor:
                break
        logger.debug("users.list: %d guests across %d pages", len(guests), pages)
        return guests

    # ── Signals ───────────────────────────────────────────────

    async def get_presence(self, token: str, user_id: str) -> str:
        """Current presence. Any failure reads as ``away``."""
        try:
            data = await self._call("users.getPresence", token, params={"user": user_id})
        except DirectoryError as exc:
            logger.info("Presence lookup failed for %s, assuming away: %s", user_id, exc)
            return PRESENCE_AWAY
        return PRESENCE_ACTIVE if data.get("presence") == PRESENCE_ACTIVE else PRESENCE_AWAY

    async def get_recent_message_timestamp(
        self, token: str, user_id: str, oldest: float,
    ) -> float | None:
        """Timestamp of the first message by ``user_id`` newer than ``oldest``.

        Looks at no more than MAX_CHANNELS_CHECKED channels and
        MESSAGES_PER_CHANNEL messages in each; stops at the first hit.
        """
        try:
            data = await self._call(
                "users.conversations",
                token,
                params={
                    "user": user_id,
                    "types": "public_channel,private_channel",
                    "exclude_archived": "true",
                    "limit": MAX_CHANNELS_CHECKED,
                },
            )
        except DirectoryError as exc:
            logger.info("Cannot list channels for %s: %s", user_id, exc)
            return None

        for channel in (data.get("channels") or [])[:MAX_CHANNELS_CHECKED]:
            try:
                history = await self._call(
                    "conversations.history",
                    token,
                    params={
                        "channel": channel["id"],
                        "oldest": f"{oldest:.6f}",
                        "limit": MESSAGES_PER_CHANNEL,
                    },
                )
            except DirectoryError as exc:
                logger.debug("Skipping channel %s: %s", channel.get("id"), exc)
                continue
            for message in history.get("messages") or []:
                if message.get("user") != user_id or not message.get("ts"):
                    continue
                ts = float(message["ts"])
                if ts > oldest:
                    return ts
        return None

    # ── Messaging ─────────────────────────────────────────────

    async def send_direct_message(
        self, token: str, user_id: str, blocks: list[dict], text: str,
    ) -> dict[str, Any]:
        """Open (or reuse) a DM channel with ``user_id`` and post ``blocks``."""
        opened = await self._call("conversations.open", token, body={"users": user_id})
        channel_id = opened["channel"]["id"]
        return await self._call(
            "chat.postMessage",
            token,
            body={"channel": channel_id, "blocks": blocks, "text": text},
        )
