"""WorkspaceEvent model — append-only activity log per workspace."""

import uuid
from enum import StrEnum

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

from sentinel.models.base import TimestampMixin, new_uuid


class WorkspaceEventType(StrEnum):
    DM_ALERT_SENT = "dm_alert_sent"
    DEACTIVATE_BUTTON_CLICKED = "deactivate_button_clicked"
    IGNORE_BUTTON_CLICKED = "ignore_button_clicked"
    APP_UNINSTALLED = "app_uninstalled"


class WorkspaceEvent(TimestampMixin, SQLModel, table=True):
    __tablename__ = "workspace_events"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    workspace_id: uuid.UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    type: str = Field(max_length=64, nullable=False)
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False, default=dict))
