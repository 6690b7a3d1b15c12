"""Import all models so SQLModel.metadata picks them up."""

from sentinel.models.audit_run import AuditRun
from sentinel.models.event_claim import ClaimStatus, ExternalEventClaim
from sentinel.models.guest_audit import GuestAction, GuestAudit
from sentinel.models.subscription import (
    ACTIVE_EQUIVALENT_STATUSES,
    Subscription,
    SubscriptionStatus,
    is_active_equivalent,
)
from sentinel.models.workspace import Workspace
from sentinel.models.workspace_event import WorkspaceEvent, WorkspaceEventType

__all__ = [
    "ACTIVE_EQUIVALENT_STATUSES",
    "AuditRun",
    "ClaimStatus",
    "ExternalEventClaim",
    "GuestAction",
    "GuestAudit",
    "Subscription",
    "SubscriptionStatus",
    "Workspace",
    "WorkspaceEvent",
    "WorkspaceEventType",
    "is_active_equivalent",
]
