"""Stripe webhook receiver — verify, claim, reconcile, record the outcome."""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse

from sentinel.api.deps import AppSettings, PaymentClientDep, Session
from sentinel.core.errors import SignatureVerificationError
from sentinel.services.billing import construct_event
from sentinel.services.event_claims import ClaimOutcome, EventClaimManager
from sentinel.services.reconciler import SubscriptionReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    session: Session,
    settings: AppSettings,
    payments: PaymentClientDep,
) -> JSONResponse:
    payload = await request.body()
    try:
        event = construct_event(
            payload,
            request.headers.get("stripe-signature"),
            settings.stripe_webhook_secret,
        )
    except SignatureVerificationError as exc:
        logger.warning("Rejected Stripe webhook: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from exc

    event_id = str(event["id"])
    event_type = str(event["type"])
    claims = EventClaimManager(session)

    outcome = await claims.claim(event_id, event_type)
    if outcome == ClaimOutcome.ALREADY_PROCESSED:
        logger.info("Stripe event %s already processed", event_id)
        return JSONResponse({"received": True, "duplicate": True})
    if outcome == ClaimOutcome.IN_FLIGHT:
        logger.info("Stripe event %s is being processed elsewhere", event_id)
        return JSONResponse(
            {"received": False, "detail": "Event is already being processed"},
            status_code=status.HTTP_409_CONFLICT,
        )

    reconciler = SubscriptionReconciler(session, payments, settings.price_to_plan)
    try:
        await reconciler.apply(event)
        await session.commit()
    except Exception as exc:
        await session.rollback()
        logger.exception("Failed to process Stripe event %s (%s)", event_id, event_type)
        await claims.mark_failed(event_id, f"{type(exc).__name__}: {exc}")
        return JSONResponse(
            {"received": False, "detail": "Event processing failed"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    await claims.mark_processed(event_id)
    return JSONResponse({"received": True})
