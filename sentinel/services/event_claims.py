"""Idempotency claims for external (Stripe) events.

The claim is an INSERT on the event id primary key. Whoever inserts first
owns the event; everyone else reads the existing row and learns whether the
event is done, in flight, or abandoned and safe to take over.

    absent ──claim──> processing ──mark_processed──> processed
                          │  ▲
             mark_failed  │  │ reclaim (failed, or processing gone stale)
                          ▼  │
                         failed
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import StrEnum

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.models.base import utcnow
from sentinel.models.event_claim import ClaimStatus, ExternalEventClaim

logger = logging.getLogger(__name__)

STALE_CLAIM_AFTER = timedelta(minutes=10)
MAX_ERROR_LENGTH = 2000


class ClaimOutcome(StrEnum):
    CLAIMED = "claimed"
    ALREADY_PROCESSED = "already_processed"
    IN_FLIGHT = "in_flight"


class EventClaimManager:
    """Claim lifecycle over one session. Every transition commits."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        stale_after: timedelta = STALE_CLAIM_AFTER,
    ) -> None:
        self._session = session
        self._stale_after = stale_after

    async def claim(
        self, event_id: str, event_type: str = "", now: datetime | None = None,
    ) -> ClaimOutcome:
        now = now or utcnow()
        self._session.add(
            ExternalEventClaim(
                event_id=event_id,
                event_type=event_type,
                status=ClaimStatus.PROCESSING,
                attempts=1,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            await self._session.commit()
            return ClaimOutcome.CLAIMED
        except IntegrityError:
            # Unique violation: somebody already owns or owned this event.
            await self._session.rollback()

        existing = await self._session.get(
            ExternalEventClaim, event_id, populate_existing=True,
        )
        if existing is None:
            # Row vanished between insert and read (retention purge); claim again.
            logger.warning("Claim row for %s disappeared, retrying claim", event_id)
            return await self.claim(event_id, event_type, now)

        if existing.status == ClaimStatus.PROCESSED:
            return ClaimOutcome.ALREADY_PROCESSED

        if existing.status == ClaimStatus.PROCESSING and now - existing.updated_at < self._stale_after:
            return ClaimOutcome.IN_FLIGHT

        return await self._reclaim(existing, now)

    async def _reclaim(self, existing: ExternalEventClaim, now: datetime) -> ClaimOutcome:
        """Compare-and-set takeover of a failed or stale claim.

        The WHERE clause pins the exact row version we observed, so only one
        of several concurrent reclaimers can win.
        """
        observed_status = existing.status
        observed_updated_at = existing.updated_at
        observed_attempts = existing.attempts
        result = await self._session.execute(
            update(ExternalEventClaim)
            .where(
                ExternalEventClaim.event_id == existing.event_id,
                ExternalEventClaim.status == observed_status,
                ExternalEventClaim.updated_at == observed_updated_at,
            )
            .values(
                status=ClaimStatus.PROCESSING,
                attempts=observed_attempts + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.commit()
        if result.rowcount != 1:
            return ClaimOutcome.IN_FLIGHT

        logger.info(
            "Reclaimed %s event %s (attempt %d)",
            observed_status, existing.event_id, observed_attempts + 1,
        )
        return ClaimOutcome.CLAIMED

    async def mark_processed(self, event_id: str) -> None:
        now = utcnow()
        await self._session.execute(
            update(ExternalEventClaim)
            .where(ExternalEventClaim.event_id == event_id)
            .values(status=ClaimStatus.PROCESSED, last_error=None, processed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self._session.commit()

    async def mark_failed(self, event_id: str, error_text: str) -> None:
        await self._session.execute(
            update(ExternalEventClaim)
            .where(ExternalEventClaim.event_id == event_id)
            .values(
                status=ClaimStatus.FAILED,
                last_error=error_text[:MAX_ERROR_LENGTH],
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.commit()
