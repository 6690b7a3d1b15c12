"""Internal audit trigger for schedulers outside the worker."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from sentinel.api.deps import Orchestrator, require_internal_secret

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(require_internal_secret)],
)


class AuditTriggerResponse(BaseModel):
    ok: bool
    tenants_audited: int
    guests_flagged: int


@router.api_route("/audit", methods=["GET", "POST"], response_model=AuditTriggerResponse)
async def trigger_audit(orchestrator: Orchestrator) -> AuditTriggerResponse:
    summary = await orchestrator.audit_all_eligible_tenants()
    return AuditTriggerResponse(
        ok=True,
        tenants_audited=summary.tenants_audited,
        guests_flagged=summary.guests_flagged,
    )
