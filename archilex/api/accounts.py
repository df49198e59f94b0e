"""
Account API routes.

- POST /api/accounts: register (free plan, empty counter)
- GET  /api/accounts/me: caller's account with current-period usage
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from archilex.core.auth import get_current_account_id
from archilex.features.accounts.service import create_account, get_account
from archilex.features.entitlements.service import get_usage_summary
from archilex.models.account import Account, Profession
from archilex.models.usage import UsageSummary

router = APIRouter(prefix="/accounts", tags=["accounts"])


class CreateAccountRequest(BaseModel):
    email: str
    full_name: str
    profession: Profession = Profession.ARCHITECT


class AccountResponse(BaseModel):
    account: Account
    usage: UsageSummary


@router.post("", status_code=201, response_model=Account)
def register(request: CreateAccountRequest):
    return create_account(request.email, request.full_name, profession=request.profession.value)


@router.get("/me", response_model=AccountResponse)
def me(account_id: str = Depends(get_current_account_id)):
    return AccountResponse(account=get_account(account_id), usage=get_usage_summary(account_id))
