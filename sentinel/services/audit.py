"""Audit orchestrator — guest inactivity audit across all paying workspaces.

Per workspace the order is fixed: flagged rows are committed before any DM
is sent, and the snapshot row is written last. A crash mid-way therefore
always leaves a queryable flagged state.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from sentinel.core.database import upsert_rows
from sentinel.core.plans import can_send_alerts
from sentinel.core.security import decrypt_value
from sentinel.models.audit_run import AuditRun
from sentinel.models.base import new_uuid, utcnow
from sentinel.models.guest_audit import GuestAction, GuestAudit
from sentinel.models.subscription import ACTIVE_EQUIVALENT_STATUSES, Subscription
from sentinel.models.workspace import Workspace
from sentinel.models.workspace_event import WorkspaceEvent, WorkspaceEventType
from sentinel.services.directory import DirectoryClient
from sentinel.services.notifications import alert_fallback_text, build_inactive_guest_alert
from sentinel.services.scoring import GuestScorer, ScoredGuest

logger = logging.getLogger(__name__)

DEFAULT_SEAT_COST_USD = 15.0
DEFAULT_WORKSPACE_BATCH_SIZE = 5


@dataclass(frozen=True)
class AuditSummary:
    tenants_audited: int
    guests_flagged: int


@dataclass(frozen=True)
class WorkspaceAuditResult:
    workspace_id: uuid.UUID
    total_guests: int
    inactive_guests: int
    estimated_waste: float
    alerts_sent: int


class AuditOrchestrator:
    """Runs the guest audit. All collaborators are injected."""

    def __init__(
        self,
        session_factory: sessionmaker,
        directory: DirectoryClient,
        scorer: GuestScorer,
        *,
        decrypt: Callable[[str], str] = decrypt_value,
        batch_size: int = DEFAULT_WORKSPACE_BATCH_SIZE,
        default_seat_cost: float = DEFAULT_SEAT_COST_USD,
    ) -> None:
        self._session_factory = session_factory
        self._directory = directory
        self._scorer = scorer
        self._decrypt = decrypt
        self._batch_size = max(1, batch_size)
        self._default_seat_cost = default_seat_cost

    async def audit_all_eligible_tenants(self) -> AuditSummary:
        """Audit every active workspace with an active or trialing subscription.

        A failing workspace is logged and skipped; the summary only counts
        workspaces whose audit completed.
        """
        workspaces = await self._fetch_eligible_workspaces()
        if not workspaces:
            logger.info("No eligible workspaces to audit")
            return AuditSummary(tenants_audited=0, guests_flagged=0)

        logger.info("Starting guest audit for %d workspaces", len(workspaces))
        audited = 0
        flagged = 0
        for i in range(0, len(workspaces), self._batch_size):
            batch = workspaces[i : i + self._batch_size]
            results = await asyncio.gather(
                *(self.audit_workspace(ws) for ws in batch),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, WorkspaceAuditResult):
                    audited += 1
                    flagged += result.inactive_guests
                # failures were already logged with workspace context

        logger.info("Guest audit completed: %d workspaces, %d guests flagged", audited, flagged)
        return AuditSummary(tenants_audited=audited, guests_flagged=flagged)

    async def _fetch_eligible_workspaces(self) -> list[Workspace]:
        async with self._session_factory() as session:
            stmt = (
                select(Workspace)
                .join(Subscription, Subscription.workspace_id == Workspace.id)
                .where(
                    Subscription.status.in_(sorted(ACTIVE_EQUIVALENT_STATUSES)),  # type: ignore[attr-defined]
                    Workspace.is_active.is_(True),  # type: ignore[union-attr]
                )
                .order_by(Workspace.created_at)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def audit_workspace(self, workspace: Workspace) -> WorkspaceAuditResult:
        started = time.monotonic()
        logger.info("Auditing workspace %s (%s)", workspace.id, workspace.team_name)
        try:
            token = self._decrypt(workspace.access_token)
            guests = await self._directory.list_guest_accounts(token)
            seat_cost = workspace.estimated_seat_cost
            if seat_cost is None:
                seat_cost = self._default_seat_cost

            scored = await self._scorer.score_all(token, guests)
            inactive = [sg for sg in scored if not sg.active]
            active_ids = [sg.guest.id for sg in scored if sg.active]

            async with self._session_factory() as session:
                await self._flag_guests(session, workspace.id, inactive, seat_cost)
                await self._clear_active_guests(session, workspace.id, active_ids)
                await session.commit()

            alerts_sent = 0
            if inactive and can_send_alerts(workspace.plan_type, len(guests)):
                alerts_sent = await self._send_alerts(token, workspace, inactive, seat_cost)
            elif inactive:
                logger.info(
                    "Alerts not included for workspace %s on plan %s with %d guests",
                    workspace.id, workspace.plan_type, len(guests),
                )

            waste = len(inactive) * seat_cost
            async with self._session_factory() as session:
                session.add(
                    AuditRun(
                        workspace_id=workspace.id,
                        guest_count=len(scored),
                        inactive_count=len(inactive),
                        estimated_waste=waste,
                    )
                )
                await session.commit()
        except Exception:
            logger.exception(
                "Workspace audit failed for %s (%s)", workspace.id, workspace.team_name,
            )
            raise

        logger.info(
            "Workspace %s audited: %d guests, %d inactive, %d alerts in %.0fms",
            workspace.id, len(scored), len(inactive), alerts_sent,
            (time.monotonic() - started) * 1000,
        )
        return WorkspaceAuditResult(
            workspace_id=workspace.id,
            total_guests=len(scored),
            inactive_guests=len(inactive),
            estimated_waste=waste,
            alerts_sent=alerts_sent,
        )

    # ── Persistence ───────────────────────────────────────────

    async def _flag_guests(
        self,
        session: AsyncSession,
        workspace_id: uuid.UUID,
        inactive: list[ScoredGuest],
        seat_cost: float,
    ) -> None:
        if not inactive:
            return
        now = utcnow()
        rows = [
            {
                "id": new_uuid(),
                "workspace_id": workspace_id,
                "guest_id": sg.guest.id,
                "is_flagged": True,
                "last_seen_source": sg.source,
                "estimated_cost_monthly": seat_cost,
                "estimated_cost_yearly": seat_cost * 12,
                "action_taken": str(GuestAction.FLAGGED),
                "created_at": now,
                "updated_at": now,
            }
            for sg in inactive
        ]
        await upsert_rows(
            session,
            GuestAudit,
            rows,
            conflict_columns=["workspace_id", "guest_id"],
            update_columns=[
                "is_flagged",
                "last_seen_source",
                "estimated_cost_monthly",
                "estimated_cost_yearly",
                "action_taken",
                "updated_at",
            ],
        )

    async def _clear_active_guests(
        self, session: AsyncSession, workspace_id: uuid.UUID, active_ids: list[str],
    ) -> None:
        if not active_ids:
            return
        await session.execute(
            delete(GuestAudit).where(
                GuestAudit.workspace_id == workspace_id,
                GuestAudit.guest_id.in_(active_ids),  # type: ignore[attr-defined]
            )
        )

    # ── Notifications ─────────────────────────────────────────

    async def _send_alerts(
        self,
        token: str,
        workspace: Workspace,
        inactive: list[ScoredGuest],
        seat_cost: float,
    ) -> int:
        recipients = workspace.recipients()
        outcomes = await asyncio.gather(
            *(
                self._send_alert(token, workspace, admin_id, sg.guest.id, seat_cost)
                for sg in inactive
                for admin_id in recipients
            )
        )
        sent = [event for event in outcomes if event is not None]
        if sent:
            async with self._session_factory() as session:
                session.add_all(sent)
                await session.commit()
        return len(sent)

    async def _send_alert(
        self,
        token: str,
        workspace: Workspace,
        admin_id: str,
        guest_id: str,
        seat_cost: float,
    ) -> WorkspaceEvent | None:
        """Send one DM. Never raises; returns the event to log on success."""
        try:
            await self._directory.send_direct_message(
                token,
                admin_id,
                build_inactive_guest_alert(guest_id, seat_cost),
                alert_fallback_text(guest_id),
            )
        except Exception:
            logger.exception(
                "Failed to send DM alert for guest %s to %s in workspace %s",
                guest_id, admin_id, workspace.id,
            )
            return None
        return WorkspaceEvent(
            workspace_id=workspace.id,
            type=WorkspaceEventType.DM_ALERT_SENT,
            payload={"guest_id": guest_id, "admin_id": admin_id},
        )
