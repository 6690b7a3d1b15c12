"""Interaction handler — admin button clicks on inactive-guest alerts."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import parse_qs

import httpx
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from sentinel.models.base import utcnow
from sentinel.models.guest_audit import GuestAction, GuestAudit
from sentinel.models.workspace import Workspace
from sentinel.models.workspace_event import WorkspaceEvent, WorkspaceEventType
from sentinel.services.notifications import parse_action

logger = logging.getLogger(__name__)

BLOCK_ACTIONS = "block_actions"

_EVENT_TYPES = {
    GuestAction.DEACTIVATION_LOGGED: WorkspaceEventType.DEACTIVATE_BUTTON_CLICKED,
    GuestAction.IGNORED: WorkspaceEventType.IGNORE_BUTTON_CLICKED,
}

_CONFIRMATIONS = {
    GuestAction.DEACTIVATION_LOGGED: (
        "Deactivation of <@{guest}> logged by <@{user}>. "
        "Remove the guest from workspace settings to stop paying for the seat."
    ),
    GuestAction.IGNORED: "<@{user}> chose to keep <@{guest}>. They will not be alerted again until the next audit.",
}


class MalformedInteractionError(ValueError):
    """The interaction body is not a usable ``payload`` form field."""


def parse_interaction_body(body: bytes) -> dict[str, Any]:
    """Decode the ``payload=<json>`` form body Slack posts for interactions."""
    fields = parse_qs(body.decode("utf-8", errors="replace"))
    raw = fields.get("payload")
    if not raw:
        raise MalformedInteractionError("Missing payload field")
    try:
        payload = json.loads(raw[0])
    except ValueError as exc:
        raise MalformedInteractionError("Payload is not valid JSON") from exc
    if not isinstance(payload, dict) or "type" not in payload:
        raise MalformedInteractionError("Payload has no type")
    return payload


class InteractionHandler:
    def __init__(self, session_factory: sessionmaker, http: httpx.AsyncClient) -> None:
        self._session_factory = session_factory
        self._http = http

    async def handle(self, payload: dict[str, Any]) -> None:
        """Process an acknowledged interaction. Errors are logged, never raised."""
        try:
            await self._handle(payload)
        except Exception:
            logger.exception(
                "Failed to process Slack interaction for team %s",
                (payload.get("team") or {}).get("id"),
            )

    async def _handle(self, payload: dict[str, Any]) -> None:
        if payload.get("type") != BLOCK_ACTIONS:
            logger.debug("Ignoring Slack interaction of type %s", payload.get("type"))
            return

        team_id = (payload.get("team") or {}).get("id")
        user_id = (payload.get("user") or {}).get("id")
        response_url = payload.get("response_url")

        for action in payload.get("actions") or []:
            parsed = parse_action(action.get("action_id", ""), action.get("value", ""))
            if parsed is None:
                logger.debug("Ignoring unknown action %s", action.get("action_id"))
                continue
            disposition, guest_id = parsed

            applied = await self.record_disposition(team_id, guest_id, disposition, user_id)
            if applied and response_url:
                await self._reply(
                    response_url,
                    _CONFIRMATIONS[disposition].format(guest=guest_id, user=user_id),
                )

    async def record_disposition(
        self,
        team_id: str | None,
        guest_id: str,
        disposition: GuestAction,
        user_id: str | None,
    ) -> bool:
        """Store the admin's decision on a flagged guest.

        Returns False when the workspace or the flagged row no longer exists.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(Workspace).where(Workspace.slack_team_id == team_id)
            )
            workspace = result.scalar_one_or_none()
            if workspace is None:
                logger.warning("Interaction from unknown team %s", team_id)
                return False

            result = await session.execute(
                select(GuestAudit).where(
                    GuestAudit.workspace_id == workspace.id,
                    GuestAudit.guest_id == guest_id,
                )
            )
            audit = result.scalar_one_or_none()
            if audit is None:
                logger.info(
                    "Guest %s is no longer flagged in workspace %s", guest_id, workspace.id,
                )
                return False

            audit.action_taken = str(disposition)
            audit.updated_at = utcnow()
            session.add(audit)
            session.add(
                WorkspaceEvent(
                    workspace_id=workspace.id,
                    type=_EVENT_TYPES[disposition],
                    payload={"guest_id": guest_id, "admin_id": user_id},
                )
            )
            await session.commit()

        logger.info(
            "Guest %s in workspace %s marked %s by %s",
            guest_id, workspace.id, disposition, user_id,
        )
        return True

    async def _reply(self, response_url: str, text: str) -> None:
        try:
            resp = await self._http.post(
                response_url,
                json={"replace_original": True, "text": text},
            )
            resp.raise_for_status()
        except httpx.HTTPError:
            logger.exception("Failed to reply on Slack response_url")
