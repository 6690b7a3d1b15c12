"""Subscription reconciler — apply Stripe billing events to workspaces.

Callers must hold a claim on the event (see ``event_claims``). The
reconciler only stages changes; the caller commits on success and rolls back
on any exception.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sentinel.core.database import upsert_rows
from sentinel.core.errors import UnknownPriceError
from sentinel.core.plans import DEFAULT_PAID_PLAN, PAID_PLANS, Plan
from sentinel.models.base import new_uuid, utcnow
from sentinel.models.subscription import Subscription, SubscriptionStatus, is_active_equivalent
from sentinel.models.workspace import Workspace
from sentinel.services.billing import PaymentClient, first_price_id

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"


def _parse_uuid(value: Any) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _string_id(value: Any) -> str | None:
    """Stripe expandable fields are either an id string or an object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id")
    return None


class SubscriptionReconciler:
    def __init__(
        self,
        session: AsyncSession,
        payments: PaymentClient,
        price_to_plan: dict[str, str],
    ) -> None:
        self._session = session
        self._payments = payments
        self._price_to_plan = price_to_plan

    async def apply(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        if event_type == CHECKOUT_COMPLETED:
            await self.handle_checkout_completed(obj)
        elif event_type in (SUBSCRIPTION_UPDATED, SUBSCRIPTION_DELETED):
            await self.handle_subscription_changed(obj)
        else:
            logger.debug("Ignoring unhandled Stripe event type %s", event_type)

    # ── checkout.session.completed ────────────────────────────

    async def handle_checkout_completed(self, checkout: dict[str, Any]) -> None:
        metadata = checkout.get("metadata") or {}
        workspace_id = _parse_uuid(checkout.get("client_reference_id")) or _parse_uuid(
            metadata.get("workspaceId")
        )
        if workspace_id is None:
            logger.warning(
                "checkout.session.completed %s has no workspace reference", checkout.get("id"),
            )
            return

        subscription_id = _string_id(checkout.get("subscription"))
        customer_id = _string_id(checkout.get("customer"))
        plan = await self._resolve_checkout_plan(metadata.get("plan"), subscription_id)

        await self._upsert(
            workspace_id,
            customer_id=customer_id,
            subscription_id=subscription_id,
            plan=plan,
            status=SubscriptionStatus.ACTIVE,
        )
        logger.info(
            "Subscription created for workspace %s (plan=%s, subscription=%s)",
            workspace_id, plan, subscription_id,
        )

    async def _resolve_checkout_plan(
        self, metadata_plan: str | None, subscription_id: str | None,
    ) -> str:
        if metadata_plan in PAID_PLANS:
            return str(metadata_plan)

        if subscription_id:
            subscription = await self._payments.retrieve_subscription(subscription_id)
            plan = self._price_to_plan.get(first_price_id(subscription) or "")
            if plan:
                return plan

        logger.warning(
            "Could not resolve plan (metadata=%r, subscription=%s); defaulting to %s",
            metadata_plan, subscription_id, DEFAULT_PAID_PLAN,
        )
        return str(DEFAULT_PAID_PLAN)

    # ── customer.subscription.updated / deleted ───────────────

    async def handle_subscription_changed(self, subscription: dict[str, Any]) -> None:
        status = subscription.get("status") or SubscriptionStatus.CANCELED
        subscription_id = subscription.get("id")

        if is_active_equivalent(status):
            price_id = first_price_id(subscription)
            plan = self._price_to_plan.get(price_id or "")
            if plan is None:
                # Never guess the plan of a paying workspace.
                raise UnknownPriceError(price_id, subscription_id)
        else:
            plan = Plan.FREE

        customer_id = _string_id(subscription.get("customer"))
        workspace_id = _parse_uuid((subscription.get("metadata") or {}).get("workspaceId"))
        if workspace_id is None and customer_id:
            workspace_id = await self._workspace_for_customer(customer_id)
        if workspace_id is None:
            logger.warning(
                "Subscription %s (customer %s) does not map to any workspace",
                subscription_id, customer_id,
            )
            return

        await self._upsert(
            workspace_id,
            customer_id=customer_id,
            subscription_id=subscription_id,
            plan=plan,
            status=status,
        )
        logger.info(
            "Subscription %s for workspace %s is now %s (plan=%s)",
            subscription_id, workspace_id, status, plan,
        )

    async def _workspace_for_customer(self, customer_id: str) -> uuid.UUID | None:
        result = await self._session.execute(
            select(Subscription.workspace_id).where(Subscription.stripe_customer_id == customer_id)
        )
        return result.scalars().first()

    # ── Persistence ───────────────────────────────────────────

    async def _upsert(
        self,
        workspace_id: uuid.UUID,
        *,
        customer_id: str | None,
        subscription_id: str | None,
        plan: str,
        status: str,
    ) -> None:
        now = utcnow()
        await upsert_rows(
            self._session,
            Subscription,
            [
                {
                    "id": new_uuid(),
                    "workspace_id": workspace_id,
                    "stripe_customer_id": customer_id,
                    "stripe_subscription_id": subscription_id,
                    "plan": str(plan),
                    "status": str(status),
                    "created_at": now,
                    "updated_at": now,
                }
            ],
            conflict_columns=["workspace_id"],
            update_columns=[
                "stripe_customer_id",
                "stripe_subscription_id",
                "plan",
                "status",
                "updated_at",
            ],
        )
        # Cascade: the workspace only keeps a paid plan while billing is live.
        workspace_plan = str(plan) if is_active_equivalent(str(status)) else str(Plan.FREE)
        await self._session.execute(
            update(Workspace)
            .where(Workspace.id == workspace_id)
            .values(plan_type=workspace_plan, updated_at=now)
            .execution_options(synchronize_session=False)
        )
