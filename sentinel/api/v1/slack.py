"""Slack callbacks — interactive button clicks and Events API deliveries."""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response, status

from sentinel.api.deps import AppSettings, Interactions, Session
from sentinel.core.errors import SignatureVerificationError
from sentinel.core.security import verify_slack_signature
from sentinel.services.slack_actions import MalformedInteractionError, parse_interaction_body
from sentinel.services.slack_events import handle_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slack", tags=["slack"])


async def _verified_body(request: Request, signing_secret: str) -> bytes:
    body = await request.body()
    try:
        verify_slack_signature(
            signing_secret,
            request.headers.get("x-slack-request-timestamp"),
            request.headers.get("x-slack-signature"),
            body,
        )
    except SignatureVerificationError as exc:
        logger.warning("Rejected Slack request: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature",
        ) from exc
    return body


@router.post("/actions")
async def slack_actions(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: AppSettings,
    handler: Interactions,
) -> Response:
    body = await _verified_body(request, settings.slack_signing_secret)
    try:
        payload = parse_interaction_body(body)
    except MalformedInteractionError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    # Slack expects an acknowledgement within three seconds.
    background_tasks.add_task(handler.handle, payload)
    return Response(status_code=status.HTTP_200_OK)


@router.post("/events")
async def slack_events(
    request: Request,
    session: Session,
    settings: AppSettings,
) -> dict:
    body = await _verified_body(request, settings.slack_signing_secret)
    try:
        envelope = json.loads(body)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Body is not valid JSON",
        ) from exc
    if not isinstance(envelope, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Body is not an event envelope",
        )
    return await handle_event(session, envelope)
