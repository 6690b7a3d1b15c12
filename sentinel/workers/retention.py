"""Scheduled job — purge rows past their retention window."""

from __future__ import annotations

from sentinel.core.database import async_session_factory
from sentinel.services.retention import purge_expired_records


async def purge_expired_data(ctx: dict) -> dict:
    """Cron job: delete expired audit state, snapshots, claims and events."""
    session_factory = ctx.get("session_factory") or async_session_factory
    return await purge_expired_records(session_factory)
