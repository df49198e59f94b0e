"""
archilex/features/usage/service.py

Usage meter: per-account monthly counter with lazy calendar-month reset.

Handles:
- Period bounds and the staleness predicate
- Effective (read-side) usage without persisting a reset
- Atomic conditional increment (rollover + limit check in one statement)
- Admin reset and per-tool breakdowns

A counter whose anchor lies in an earlier calendar month is stale and
counts as 0. Reads apply that rule in memory; only increments and admin
resets write it back.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import select, insert, update, case, func, literal, or_

from archilex.core.config import settings
from archilex.core.database import get_db_session, accounts, usage_events
from archilex.core.errors import NotFoundError, ValidationError
from archilex.core.clock import as_utc, normalize_now
from archilex.features.accounts.service import get_account
from archilex.models.account import Account
from archilex.models.usage import UsageIncrement

logger = logging.getLogger("archilex.usage")


def period_tz(name: Optional[str] = None):
    """Zone whose calendar defines a usage period."""
    name = name or settings.USAGE_PERIOD_TZ or "UTC"
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def current_period(now: Optional[datetime] = None, tz=None) -> Tuple[datetime, datetime]:
    """
    Calendar month containing now, as a half-open [start, end) in UTC.

    Args:
        now: reference instant (defaults to now)
        tz: zone or zone name; defaults to USAGE_PERIOD_TZ
    """
    now = normalize_now(now)
    zone = period_tz(tz) if tz is None or isinstance(tz, str) else tz
    local = now.astimezone(zone)
    start = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def period_key(now: Optional[datetime] = None) -> str:
    """YYYY-MM label of the period containing now."""
    local = normalize_now(now).astimezone(period_tz())
    return f"{local.year:04d}-{local.month:02d}"


def is_stale(period_anchor: datetime, now: Optional[datetime] = None) -> bool:
    """True when the anchor's (month, year) differs from now's in the period zone."""
    zone = period_tz()
    anchor = as_utc(period_anchor).astimezone(zone)
    current = normalize_now(now).astimezone(zone)
    return (anchor.year, anchor.month) != (current.year, current.month)


def effective_usage(account: Account, now: Optional[datetime] = None) -> int:
    """Usage that counts against the current period (0 when stale)."""
    if is_stale(account.period_anchor, now):
        return 0
    return account.usage_count


def get_current_usage(account_id: str, now: Optional[datetime] = None) -> int:
    """Read-side usage; never persists a rollover."""
    return effective_usage(get_account(account_id), now)


def increment_usage(
    account_id: str,
    *,
    tool: str,
    amount: int = 1,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Optional[UsageIncrement]:
    """
    Atomically consume `amount` uses.

    A single conditional UPDATE folds the monthly rollover and the limit
    check into the write, so concurrent callers can never both pass the
    check on the same count.

    Args:
        account_id: account to charge
        tool: tool name recorded in usage_events
        amount: uses to add (>= 1)
        limit: refuse when the resulting count would exceed it (None = no limit)
        now: clock override

    Returns:
        UsageIncrement, or None when `limit` refused the increment

    Raises:
        NotFoundError: unknown account
    """
    if amount < 1:
        raise ValidationError("amount must be >= 1")

    now = normalize_now(now)
    start, end = current_period(now)

    anchor = accounts.c.period_anchor
    stale = or_(anchor < start, anchor >= end)
    new_count = case((stale, amount), else_=accounts.c.usage_count + amount)

    stmt = (
        update(accounts)
        .where(accounts.c.account_id == account_id)
        .values(
            usage_count=new_count,
            period_anchor=case((stale, literal(now, anchor.type)), else_=anchor),
        )
        .returning(accounts.c.usage_count, accounts.c.period_anchor)
    )
    if limit is not None:
        stmt = stmt.where(new_count <= limit)

    with get_db_session() as session:
        before = session.execute(
            select(accounts.c.period_anchor).where(accounts.c.account_id == account_id)
        ).first()
        if before is None:
            raise NotFoundError(f"Account {account_id} not found")

        row = session.execute(stmt).first()
        if row is None:
            return None

        session.execute(
            insert(usage_events).values(
                account_id=account_id,
                tool=tool,
                amount=amount,
                occurred_at=now,
            )
        )

    new_anchor = as_utc(row.period_anchor)
    # A stale counter restarts at `amount`, so previous is 0 in that case too
    previous = row.usage_count - amount
    # Informational only; the UPDATE above decides the rollover on its own
    rolled_over = is_stale(before.period_anchor, now) and new_anchor == now
    if rolled_over:
        logger.info("usage.rollover", extra={"account_id": account_id, "period": period_key(now)})

    return UsageIncrement(
        account_id=account_id,
        previous_count=previous,
        new_count=row.usage_count,
        rolled_over=rolled_over,
        period_anchor=new_anchor,
    )


def reset_usage(account_id: str, now: Optional[datetime] = None) -> Account:
    """Admin reset: counter to 0 and anchor to now, together."""
    now = normalize_now(now)
    with get_db_session() as session:
        result = session.execute(
            update(accounts)
            .where(accounts.c.account_id == account_id)
            .values(usage_count=0, period_anchor=now)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Account {account_id} not found")
    logger.info("usage.reset", extra={"account_id": account_id})
    return get_account(account_id)


def get_tool_breakdown(now: Optional[datetime] = None, account_id: Optional[str] = None) -> Dict[str, int]:
    """Uses per tool in the current period, from usage_events."""
    start, end = current_period(now)
    query = (
        select(usage_events.c.tool, func.sum(usage_events.c.amount))
        .where(usage_events.c.occurred_at >= start)
        .where(usage_events.c.occurred_at < end)
        .group_by(usage_events.c.tool)
    )
    if account_id:
        query = query.where(usage_events.c.account_id == account_id)
    with get_db_session() as session:
        rows = session.execute(query).all()
    return {tool: int(total or 0) for tool, total in rows}
