"""
Caller identity.

Session handling lives in the web front end; requests reach this service
with the authenticated account id in X-User-Id.
"""
from typing import Optional

from fastapi import Header

from archilex.core.errors import UnauthorizedError


def get_current_account_id(x_user_id: Optional[str] = Header(None)) -> str:
    """FastAPI dependency: account id of the caller (401 if absent)."""
    account_id = (x_user_id or "").strip()
    if not account_id:
        raise UnauthorizedError("Authentication required")
    return account_id
