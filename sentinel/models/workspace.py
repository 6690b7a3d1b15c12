"""Workspace model — an installed Slack workspace (the tenant)."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime
from sqlmodel import Column, Field, SQLModel

from sentinel.core.plans import Plan
from sentinel.models.base import TimestampMixin, new_uuid


class Workspace(TimestampMixin, SQLModel, table=True):
    __tablename__ = "workspaces"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    slack_team_id: str = Field(max_length=64, unique=True, nullable=False, index=True)
    team_name: str = Field(max_length=255, nullable=False)

    # Fernet-encrypted user token of the installing admin
    access_token: str = Field(max_length=2048, nullable=False)
    installed_by: str = Field(max_length=64, nullable=False)
    # Admin user ids that receive DM alerts; empty means [installed_by]
    alert_recipients: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False, default=list),
    )

    estimated_seat_cost: float | None = Field(default=15.0)
    plan_type: str = Field(default=Plan.FREE, max_length=20)

    is_active: bool = Field(default=True)
    uninstalled_at: datetime | None = Field(default=None, sa_type=DateTime)

    def recipients(self) -> list[str]:
        return list(self.alert_recipients) or [self.installed_by]
