"""GuestAudit model — the flagged state of one guest in one workspace."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel, UniqueConstraint

from sentinel.models.base import TimestampMixin, new_uuid


class GuestAction(StrEnum):
    FLAGGED = "flagged"
    DEACTIVATION_LOGGED = "deactivation_logged"
    IGNORED = "ignored"


class GuestAudit(TimestampMixin, SQLModel, table=True):
    __tablename__ = "guest_audits"
    __table_args__ = (
        UniqueConstraint("workspace_id", "guest_id", name="uq_guest_audits_workspace_guest"),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    workspace_id: uuid.UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    guest_id: str = Field(max_length=64, nullable=False)

    is_flagged: bool = Field(default=False)
    # Which signals were evaluated, e.g. "profile_presence_message_check"
    last_seen_source: str | None = Field(default=None, max_length=64)
    estimated_cost_monthly: float = Field(default=0.0)
    estimated_cost_yearly: float = Field(default=0.0)
    action_taken: str = Field(default=GuestAction.FLAGGED, max_length=32)
