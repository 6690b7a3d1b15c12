"""Retention purge — age out audit state, snapshots, claims and activity logs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.orm import sessionmaker

from sentinel.models.audit_run import AuditRun
from sentinel.models.base import utcnow
from sentinel.models.event_claim import ExternalEventClaim
from sentinel.models.guest_audit import GuestAudit
from sentinel.models.workspace_event import WorkspaceEvent

logger = logging.getLogger(__name__)

GUEST_AUDIT_RETENTION = timedelta(days=90)
AUDIT_RUN_RETENTION = timedelta(days=365)
EVENT_CLAIM_RETENTION = timedelta(days=90)
WORKSPACE_EVENT_RETENTION = timedelta(days=182)

# (table, timestamp column, retention window). Guest audits and claims age by
# last update so a row touched by the latest audit or retry is never purged.
_POLICIES = (
    (GuestAudit, GuestAudit.updated_at, GUEST_AUDIT_RETENTION),
    (AuditRun, AuditRun.created_at, AUDIT_RUN_RETENTION),
    (ExternalEventClaim, ExternalEventClaim.updated_at, EVENT_CLAIM_RETENTION),
    (WorkspaceEvent, WorkspaceEvent.created_at, WORKSPACE_EVENT_RETENTION),
)


async def purge_expired_records(
    session_factory: sessionmaker, now: datetime | None = None,
) -> dict[str, int]:
    """Delete expired rows from every retained table; returns counts per table."""
    now = now or utcnow()
    counts: dict[str, int] = {}
    async with session_factory() as session:
        for model, column, window in _POLICIES:
            result = await session.execute(delete(model).where(column < now - window))
            counts[model.__tablename__] = result.rowcount or 0
        await session.commit()

    logger.info("Retention purge removed %s", counts)
    return counts
