"""FastAPI dependencies: sessions, shared clients and internal authentication.

Clients are built from the httpx pools the lifespan puts on ``app.state``;
tests replace any of them through ``app.dependency_overrides``.
"""

from typing import Annotated

import httpx
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from sentinel.core.config import Settings, get_settings
from sentinel.core.database import async_session_factory, get_session
from sentinel.core.security import decrypt_value, secrets_match
from sentinel.services.audit import AuditOrchestrator
from sentinel.services.billing import PaymentClient
from sentinel.services.directory import DirectoryClient
from sentinel.services.scoring import GuestScorer, ScoringWeights
from sentinel.services.slack_actions import InteractionHandler

bearer_scheme = HTTPBearer(auto_error=False)


def get_session_factory() -> sessionmaker:
    return async_session_factory


def _http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_directory_client(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> DirectoryClient:
    return DirectoryClient(_http_client(request), api_url=settings.slack_api_url)


def get_payment_client(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> PaymentClient:
    return PaymentClient(
        _http_client(request),
        settings.stripe_secret_key,
        api_url=settings.stripe_api_url,
    )


def build_audit_orchestrator(
    settings: Settings,
    session_factory: sessionmaker,
    directory: DirectoryClient,
) -> AuditOrchestrator:
    """Wire the audit pipeline from settings. Shared by the API and the worker."""
    weights = ScoringWeights(
        profile_updated=settings.score_profile_updated,
        presence_active=settings.score_presence_active,
        last_message=settings.score_last_message,
        threshold=settings.min_active_score,
    )
    scorer = GuestScorer(
        directory,
        weights,
        window_days=settings.activity_window_days,
        concurrency=settings.guest_scoring_concurrency,
    )
    return AuditOrchestrator(
        session_factory,
        directory,
        scorer,
        decrypt=lambda token: decrypt_value(token, settings.encryption_key),
        batch_size=settings.workspace_batch_size,
        default_seat_cost=settings.default_seat_cost_usd,
    )


def get_audit_orchestrator(
    settings: Annotated[Settings, Depends(get_settings)],
    session_factory: Annotated[sessionmaker, Depends(get_session_factory)],
    directory: Annotated[DirectoryClient, Depends(get_directory_client)],
) -> AuditOrchestrator:
    return build_audit_orchestrator(settings, session_factory, directory)


def get_interaction_handler(
    request: Request,
    session_factory: Annotated[sessionmaker, Depends(get_session_factory)],
) -> InteractionHandler:
    return InteractionHandler(session_factory, _http_client(request))


async def require_internal_secret(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Reject callers that do not present the internal audit secret."""
    provided = credentials.credentials if credentials else None
    if not secrets_match(provided, settings.internal_audit_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


# Typed shorthand for use in route signatures
Session = Annotated[AsyncSession, Depends(get_session)]
AppSettings = Annotated[Settings, Depends(get_settings)]
PaymentClientDep = Annotated[PaymentClient, Depends(get_payment_client)]
Orchestrator = Annotated[AuditOrchestrator, Depends(get_audit_orchestrator)]
Interactions = Annotated[InteractionHandler, Depends(get_interaction_handler)]
