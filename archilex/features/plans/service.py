"""
archilex/features/plans/service.py

Plan transitions: admin overrides, confirmed payments, cancellations.

Changing plan never touches usage_count or period_anchor. Usage already
consumed this month is measured against the new quota, so an account that
downgrades below its current usage stays denied until the next rollover.
"""

import logging
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import select, insert, update

from archilex.core.clock import as_utc, normalize_now
from archilex.core.database import get_db_session, accounts, plan_changes
from archilex.core.errors import NotFoundError, ValidationError
from archilex.features.accounts.service import get_account
from archilex.features.notifications.service import ThresholdNotifier, get_notifier
from archilex.features.plans.registry import parse_tier, plan_name
from archilex.models.account import Account
from archilex.models.plan import PlanChange, PlanTier

logger = logging.getLogger("archilex.plans")

SOURCES = ("admin", "payment", "cancellation")


def set_plan(
    account_id: str,
    new_tier: Union[str, PlanTier],
    *,
    source: str = "admin",
    actor: Optional[str] = None,
    now: Optional[datetime] = None,
    notifier: Optional[ThresholdNotifier] = None,
) -> Account:
    """
    Move an account to another tier.

    Args:
        account_id: account to change
        new_tier: target tier (validated strictly)
        source: admin | payment | cancellation
        actor: who made the change (admin id, stripe event id)
        now: clock override
        notifier: e-mail sender for payment upgrades

    Returns:
        The updated account

    Raises:
        UnknownPlanTierError: new_tier is not a registered tier
        NotFoundError: unknown account
    """
    tier = parse_tier(new_tier)
    if source not in SOURCES:
        raise ValidationError(f"Unknown plan change source: {source!r}")

    now = normalize_now(now)
    current = get_account(account_id)
    if current.plan == tier.value:
        return current

    with get_db_session() as session:
        result = session.execute(
            update(accounts)
            .where(accounts.c.account_id == account_id)
            .values(plan=tier.value)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Account {account_id} not found")
        session.execute(
            insert(plan_changes).values(
                account_id=account_id,
                from_plan=current.plan,
                to_plan=tier.value,
                source=source,
                actor=actor,
                changed_at=now,
            )
        )

    logger.info(
        "plan.changed",
        extra={"account_id": account_id, "from_plan": current.plan, "to_plan": tier.value, "source": source},
    )

    updated = get_account(account_id)
    if source == "payment":
        (notifier or get_notifier()).notify_upgrade(updated, plan_name(tier))
    return updated


def get_plan_history(account_id: str) -> List[PlanChange]:
    """Plan changes for an account, oldest first."""
    with get_db_session() as session:
        rows = session.execute(
            select(plan_changes)
            .where(plan_changes.c.account_id == account_id)
            .order_by(plan_changes.c.changed_at, plan_changes.c.id)
        ).all()
    return [
        PlanChange(
            account_id=row.account_id,
            from_plan=row.from_plan,
            to_plan=row.to_plan,
            source=row.source,
            actor=row.actor,
            changed_at=as_utc(row.changed_at),
        )
        for row in rows
    ]
