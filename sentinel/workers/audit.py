"""Scheduled job — nightly guest audit across all paying workspaces."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


async def run_guest_audit(ctx: dict) -> dict:
    """Cron job: audit every eligible workspace.

    When run by ARQ, ``ctx["orchestrator"]`` is built in worker startup.
    For tests, callers inject any object with ``audit_all_eligible_tenants``.
    """
    summary = await ctx["orchestrator"].audit_all_eligible_tenants()
    logger.info(
        "Nightly audit: %d workspaces audited, %d guests flagged",
        summary.tenants_audited, summary.guests_flagged,
    )
    return {
        "tenants_audited": summary.tenants_audited,
        "guests_flagged": summary.guests_flagged,
    }
