"""Subscription model — Stripe subscription mapped onto a workspace."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from sentinel.core.plans import Plan
from sentinel.models.base import TimestampMixin, new_uuid


class SubscriptionStatus(StrEnum):
    ACTIVE = "active"
    TRIALING = "trialing"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"


ACTIVE_EQUIVALENT_STATUSES: frozenset[str] = frozenset(
    {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING}
)


def is_active_equivalent(status: str | None) -> bool:
    return status in ACTIVE_EQUIVALENT_STATUSES


class Subscription(TimestampMixin, SQLModel, table=True):
    __tablename__ = "subscriptions"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    # One subscription mapping per workspace; upserts target this key.
    workspace_id: uuid.UUID = Field(
        foreign_key="workspaces.id", nullable=False, unique=True, index=True,
    )
    stripe_customer_id: str | None = Field(default=None, max_length=255, index=True)
    stripe_subscription_id: str | None = Field(default=None, max_length=255)
    plan: str = Field(default=Plan.FREE, max_length=20)
    status: str = Field(max_length=32, nullable=False, index=True)
