"""Guest scoring — classify guests as active or inactive.

Signals are evaluated cheapest first and evaluation stops as soon as the
score reaches the active threshold:

    1. profile updated in the window   free, already in users.list
    2. presence is active              1 API call
    3. recent authored message         1..N API calls, last resort

A real message outweighs presence, and presence alone (which may just be a
keepalive) can never cross the threshold.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Protocol

from sentinel.services.directory import PRESENCE_ACTIVE, GuestRecord

SOURCE_PROFILE = "profile_check"
SOURCE_PROFILE_PRESENCE = "profile_presence_check"
SOURCE_PROFILE_PRESENCE_MESSAGE = "profile_presence_message_check"

DEFAULT_ACTIVITY_WINDOW_DAYS = 30
DEFAULT_SCORING_CONCURRENCY = 10


class SignalSource(Protocol):
    async def get_presence(self, token: str, user_id: str) -> str: ...

    async def get_recent_message_timestamp(
        self, token: str, user_id: str, oldest: float,
    ) -> float | None: ...


@dataclass(frozen=True)
class ScoringWeights:
    profile_updated: float = 1.0
    presence_active: float = 0.5
    last_message: float = 3.0
    threshold: float = 1.0

    def __post_init__(self) -> None:
        if self.presence_active >= self.threshold:
            raise ValueError("presence weight must stay below the active threshold")
        if min(self.profile_updated, self.presence_active, self.last_message) < 0:
            raise ValueError("scoring weights must be non-negative")


@dataclass(frozen=True)
class ScoredGuest:
    guest: GuestRecord
    score: float
    source: str
    active: bool


class GuestScorer:
    def __init__(
        self,
        signals: SignalSource,
        weights: ScoringWeights | None = None,
        *,
        window_days: int = DEFAULT_ACTIVITY_WINDOW_DAYS,
        concurrency: int = DEFAULT_SCORING_CONCURRENCY,
    ) -> None:
        self._signals = signals
        self.weights = weights or ScoringWeights()
        self._window_seconds = window_days * 24 * 60 * 60
        self._concurrency = max(1, concurrency)

    def cutoff(self, now: float | None = None) -> float:
        now = time.time() if now is None else now
        return now - self._window_seconds

    async def score_guest(self, token: str, guest: GuestRecord, cutoff: float) -> ScoredGuest:
        w = self.weights
        score = 0.0

        if guest.profile_updated_at and guest.profile_updated_at > cutoff:
            score += w.profile_updated
        if score >= w.threshold:
            return ScoredGuest(guest, score, SOURCE_PROFILE, True)

        presence = await self._signals.get_presence(token, guest.id)
        if presence == PRESENCE_ACTIVE:
            score += w.presence_active
        if score >= w.threshold:
            return ScoredGuest(guest, score, SOURCE_PROFILE_PRESENCE, True)

        last_ts = await self._signals.get_recent_message_timestamp(token, guest.id, cutoff)
        if last_ts is not None and last_ts > cutoff:
            score += w.last_message

        return ScoredGuest(
            guest, score, SOURCE_PROFILE_PRESENCE_MESSAGE, score >= w.threshold,
        )

    async def score_all(
        self, token: str, guests: list[GuestRecord], now: float | None = None,
    ) -> list[ScoredGuest]:
        """Score every guest with at most ``concurrency`` in flight.

        Results keep the input order.
        """
        cutoff = self.cutoff(now)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(guest: GuestRecord) -> ScoredGuest:
            async with semaphore:
                return await self.score_guest(token, guest, cutoff)

        return list(await asyncio.gather(*(_bounded(g) for g in guests)))
