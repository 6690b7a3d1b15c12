"""AuditRun model — append-only snapshot of one workspace audit."""

import uuid

from sqlmodel import Field, SQLModel

from sentinel.models.base import TimestampMixin, new_uuid


class AuditRun(TimestampMixin, SQLModel, table=True):
    __tablename__ = "audit_runs"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    workspace_id: uuid.UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)

    guest_count: int = Field(default=0)
    inactive_count: int = Field(default=0)
    estimated_waste: float = Field(default=0.0)
