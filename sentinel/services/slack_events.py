"""Directory event handler — Slack Events API callbacks."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sentinel.models.base import utcnow
from sentinel.models.workspace import Workspace
from sentinel.models.workspace_event import WorkspaceEvent, WorkspaceEventType

logger = logging.getLogger(__name__)

URL_VERIFICATION = "url_verification"
EVENT_CALLBACK = "event_callback"
UNINSTALL_EVENTS = frozenset({"app_uninstalled", "tokens_revoked"})


async def handle_event(session: AsyncSession, envelope: dict[str, Any]) -> dict[str, Any]:
    """Dispatch one verified Events API envelope and return the response body."""
    envelope_type = envelope.get("type")
    if envelope_type == URL_VERIFICATION:
        return {"challenge": envelope.get("challenge", "")}

    if envelope_type == EVENT_CALLBACK:
        event_type = (envelope.get("event") or {}).get("type")
        if event_type in UNINSTALL_EVENTS:
            await deactivate_workspace(session, envelope.get("team_id"), reason=event_type)
        else:
            logger.debug("Ignoring Slack event %s", event_type)

    return {"ok": True}


async def deactivate_workspace(
    session: AsyncSession, team_id: str | None, *, reason: str,
) -> bool:
    """Soft-delete a workspace. Rows and history are kept."""
    result = await session.execute(select(Workspace).where(Workspace.slack_team_id == team_id))
    workspace = result.scalar_one_or_none()
    if workspace is None:
        logger.warning("%s for unknown team %s", reason, team_id)
        return False
    if not workspace.is_active:
        return False

    now = utcnow()
    workspace.is_active = False
    workspace.uninstalled_at = now
    workspace.updated_at = now
    session.add(workspace)
    session.add(
        WorkspaceEvent(
            workspace_id=workspace.id,
            type=WorkspaceEventType.APP_UNINSTALLED,
            payload={"reason": reason},
        )
    )
    await session.commit()
    logger.info("Workspace %s deactivated (%s)", workspace.id, reason)
    return True
