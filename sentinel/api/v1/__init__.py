"""V1 API router aggregation."""

from fastapi import APIRouter

from sentinel.api.v1.billing import router as billing_router
from sentinel.api.v1.internal import router as internal_router
from sentinel.api.v1.slack import router as slack_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(internal_router)
v1_router.include_router(billing_router)
v1_router.include_router(slack_router)
