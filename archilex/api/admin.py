"""
Admin API routes (X-Admin-Key).

- GET   /api/admin/users: accounts with current-period usage and quota
- PATCH /api/admin/users/{account_id}/plan: override plan tier
- POST  /api/admin/users/{account_id}/usage/reset: zero the monthly counter
- GET   /api/admin/stats: plan mix and period consumption
- GET   /api/admin/billing/events: recent Stripe webhook events
"""
import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from archilex.core.admin_auth import AdminActor, require_admin
from archilex.core.clock import utc_now
from archilex.features.accounts.service import count_accounts, get_account, list_accounts
from archilex.features.billing.service import list_billing_events
from archilex.features.plans.registry import is_unlimited, quota_for
from archilex.features.plans.service import get_plan_history, set_plan
from archilex.features.usage.service import effective_usage, get_tool_breakdown, reset_usage
from archilex.models.account import Account
from archilex.models.plan import PlanChange

logger = logging.getLogger("archilex.admin")

router = APIRouter(prefix="/admin", tags=["admin"])


class AdminAccountView(BaseModel):
    account_id: str
    email: str
    full_name: str
    profession: str
    plan: str
    usage_count: int
    quota: int


class AdminUsersResponse(BaseModel):
    total: int
    users: List[AdminAccountView]


class SetPlanRequest(BaseModel):
    plan: str


class AdminStatsResponse(BaseModel):
    total_accounts: int
    accounts_per_plan: Dict[str, int]
    uses_this_period: int
    uses_per_tool: Dict[str, int]
    accounts_at_limit: int


def _view(account: Account, now=None) -> AdminAccountView:
    return AdminAccountView(
        account_id=account.account_id,
        email=account.email,
        full_name=account.full_name,
        profession=account.profession,
        plan=account.plan,
        usage_count=effective_usage(account, now),
        quota=quota_for(account.plan),
    )


@router.get("/users", response_model=AdminUsersResponse)
def admin_list_users(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: AdminActor = Depends(require_admin),
):
    now = utc_now()
    return AdminUsersResponse(
        total=count_accounts(),
        users=[_view(a, now) for a in list_accounts(limit=limit, offset=offset)],
    )


@router.patch("/users/{account_id}/plan", response_model=AdminAccountView)
def admin_set_plan(account_id: str, request: SetPlanRequest, admin: AdminActor = Depends(require_admin)):
    account = set_plan(account_id, request.plan, source="admin", actor=admin.actor_id)
    return _view(account)


@router.get("/users/{account_id}/plan-history", response_model=List[PlanChange])
def admin_plan_history(account_id: str, admin: AdminActor = Depends(require_admin)):
    get_account(account_id)
    return get_plan_history(account_id)


@router.post("/users/{account_id}/usage/reset", response_model=AdminAccountView)
def admin_reset_usage(account_id: str, admin: AdminActor = Depends(require_admin)):
    account = reset_usage(account_id)
    logger.info("admin.usage_reset", extra={"account_id": account_id, "actor": admin.actor_id})
    return _view(account)


@router.get("/stats", response_model=AdminStatsResponse)
def admin_stats(admin: AdminActor = Depends(require_admin)):
    current = utc_now()
    per_plan: Dict[str, int] = {}
    uses = 0
    at_limit = 0
    offset = 0
    while True:
        batch = list_accounts(limit=500, offset=offset)
        if not batch:
            break
        for account in batch:
            per_plan[account.plan] = per_plan.get(account.plan, 0) + 1
            used = effective_usage(account, current)
            uses += used
            quota = quota_for(account.plan)
            if not is_unlimited(quota) and used >= quota:
                at_limit += 1
        offset += len(batch)

    return AdminStatsResponse(
        total_accounts=offset,
        accounts_per_plan=per_plan,
        uses_this_period=uses,
        uses_per_tool=get_tool_breakdown(current),
        accounts_at_limit=at_limit,
    )


@router.get("/billing/events")
def admin_billing_events(limit: int = Query(50, ge=1, le=200), admin: AdminActor = Depends(require_admin)):
    return {"events": list_billing_events(limit=limit)}
