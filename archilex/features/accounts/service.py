"""
archilex/features/accounts/service.py

Account registration and lookup.

Accounts start on the free tier with an empty counter anchored at creation.
Authentication and profile editing live elsewhere.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select, insert, func
from sqlalchemy.exc import IntegrityError

from archilex.core.clock import as_utc, normalize_now
from archilex.core.database import get_db_session, accounts
from archilex.core.errors import ConflictError, NotFoundError, ValidationError
from archilex.models.account import Account, Profession
from archilex.models.plan import PlanTier

logger = logging.getLogger("archilex.accounts")

ROLES = ("user", "admin")


def row_to_account(row) -> Account:
    return Account(
        account_id=row.account_id,
        email=row.email,
        full_name=row.full_name,
        profession=row.profession,
        role=row.role,
        plan=row.plan,
        usage_count=row.usage_count,
        period_anchor=as_utc(row.period_anchor),
        created_at=as_utc(row.created_at),
    )


def create_account(
    email: str,
    full_name: str,
    profession: str = Profession.ARCHITECT.value,
    role: str = "user",
    now: Optional[datetime] = None,
) -> Account:
    """
    Register a new account on the free plan.

    Raises:
        ValidationError: malformed email, unknown profession or role
        ConflictError: email already registered
    """
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email is required")
    if not (full_name or "").strip():
        raise ValidationError("full_name is required")
    try:
        profession = Profession(profession).value
    except ValueError:
        raise ValidationError(f"Unknown profession: {profession!r}") from None
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role!r}")

    now = normalize_now(now)
    account_id = uuid4().hex

    try:
        with get_db_session() as session:
            session.execute(
                insert(accounts).values(
                    account_id=account_id,
                    email=email,
                    full_name=full_name.strip(),
                    profession=profession,
                    role=role,
                    plan=PlanTier.FREE.value,
                    usage_count=0,
                    period_anchor=now,
                    created_at=now,
                )
            )
    except IntegrityError:
        raise ConflictError("An account with this email already exists", code="email_taken") from None

    logger.info("account.created", extra={"account_id": account_id, "profession": profession})
    return get_account(account_id)


def find_account(account_id: str) -> Optional[Account]:
    with get_db_session() as session:
        row = session.execute(
            select(accounts).where(accounts.c.account_id == account_id)
        ).first()
    return row_to_account(row) if row else None


def get_account(account_id: str) -> Account:
    """Raises NotFoundError for unknown ids."""
    account = find_account(account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


def list_accounts(limit: int = 100, offset: int = 0) -> List[Account]:
    """Accounts, newest first."""
    with get_db_session() as session:
        rows = session.execute(
            select(accounts)
            .order_by(accounts.c.created_at.desc(), accounts.c.account_id)
            .limit(limit)
            .offset(offset)
        ).all()
    return [row_to_account(row) for row in rows]


def count_accounts() -> int:
    with get_db_session() as session:
        return session.execute(select(func.count()).select_from(accounts)).scalar_one()
