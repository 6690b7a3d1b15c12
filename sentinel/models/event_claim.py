"""ExternalEventClaim model — idempotency ledger for payment webhooks."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, Text
from sqlmodel import Column, Field, SQLModel

from sentinel.models.base import TimestampMixin


class ClaimStatus(StrEnum):
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class ExternalEventClaim(TimestampMixin, SQLModel, table=True):
    __tablename__ = "external_event_claims"

    # The primary key is the only thing serializing concurrent deliveries.
    event_id: str = Field(max_length=255, primary_key=True)
    event_type: str = Field(default="", max_length=100)
    status: str = Field(default=ClaimStatus.PROCESSING, max_length=20, index=True)
    attempts: int = Field(default=1)
    last_error: str | None = Field(default=None, sa_column=Column(Text))
    processed_at: datetime | None = Field(default=None, sa_type=DateTime)
