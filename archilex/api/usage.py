"""
Usage API routes.

- GET  /api/usage: quota widget data for the caller
- POST /api/usage/increment: consume one use for a client-side tool
  (cost estimator, fee calculator); 403 quota_exhausted when denied
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from archilex.core.auth import get_current_account_id
from archilex.features.entitlements.service import Tool, check_and_consume, ensure_allowed, get_usage_summary
from archilex.models.usage import UsageSummary

router = APIRouter(prefix="/usage", tags=["usage"])


class IncrementRequest(BaseModel):
    tool: Tool


class IncrementResponse(BaseModel):
    allowed: bool
    usage: UsageSummary


@router.get("", response_model=UsageSummary)
def get_usage(account_id: str = Depends(get_current_account_id)):
    return get_usage_summary(account_id)


@router.post("/increment", response_model=IncrementResponse)
def increment(request: IncrementRequest, account_id: str = Depends(get_current_account_id)):
    ensure_allowed(check_and_consume(account_id, request.tool))
    return IncrementResponse(allowed=True, usage=get_usage_summary(account_id))
