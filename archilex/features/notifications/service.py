"""
archilex/features/notifications/service.py

Threshold notifier: 80% / 100% quota crossings, at most once per period.

Handles:
- Crossing detection over a (previous, new] count range
- Per-period dedup through the usage_notifications ledger
- Hand-off to the e-mail transport (failures logged, never raised)
- Plan upgrade confirmations

The ledger row is claimed before delivery. Its unique
(account_id, threshold, period) key is what keeps concurrent requests and
separate processes from sending the same notice twice.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import insert, update, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from archilex.core.clock import normalize_now
from archilex.core.database import get_db_session, usage_notifications
from archilex.features.notifications.templates import render_threshold, upgrade_success
from archilex.features.notifications.transport import NotificationTransport, get_transport
from archilex.features.plans.registry import is_unlimited, warning_threshold
from archilex.features.usage.service import period_key
from archilex.models.account import Account
from archilex.models.notification import EmailContent, NotificationKind

logger = logging.getLogger("archilex.notifications")


def detect_crossings(previous: int, new: int, quota: int) -> List[NotificationKind]:
    """
    Thresholds crossed when usage moved from `previous` to `new`.

    A threshold T fires when previous < T <= new, so batched increments
    cannot skip it. Unlimited and zero quotas have no thresholds.
    """
    if is_unlimited(quota) or quota <= 0:
        return []
    crossed = []
    warn_at = warning_threshold(quota)
    if warn_at > 0 and previous < warn_at <= new:
        crossed.append(NotificationKind.USAGE_80)
    if previous < quota <= new:
        crossed.append(NotificationKind.USAGE_100)
    return crossed


def was_notified(account_id: str, kind: NotificationKind, now: Optional[datetime] = None) -> bool:
    with get_db_session() as session:
        row = session.execute(
            select(usage_notifications.c.id)
            .where(usage_notifications.c.account_id == account_id)
            .where(usage_notifications.c.threshold == kind.value)
            .where(usage_notifications.c.period == period_key(now))
        ).first()
    return row is not None


class ThresholdNotifier:
    """Sends threshold and upgrade e-mails through a transport."""

    def __init__(self, transport: Optional[NotificationTransport] = None):
        self._transport = transport

    @property
    def transport(self) -> NotificationTransport:
        if self._transport is None:
            self._transport = get_transport()
        return self._transport

    def _deliver(self, to: str, content: EmailContent, **log_fields) -> bool:
        try:
            delivered = bool(self.transport.send(to, content))
        except Exception:
            logger.error("notification.delivery_failed", exc_info=True, extra=log_fields)
            return False
        if not delivered:
            logger.warning("notification.not_delivered", extra=log_fields)
        return delivered

    def _claim(self, account_id: str, kind: NotificationKind, period: str, usage_count: int, quota: int, now: datetime) -> bool:
        try:
            with get_db_session() as session:
                session.execute(
                    insert(usage_notifications).values(
                        account_id=account_id,
                        threshold=kind.value,
                        period=period,
                        usage_count=usage_count,
                        quota=quota,
                        delivered=False,
                        sent_at=now,
                    )
                )
        except IntegrityError:
            return False
        return True

    def notify(
        self,
        account: Account,
        kind: NotificationKind,
        usage_count: int,
        quota: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Send a threshold notification unless one went out this period.

        Returns:
            True if this call claimed the period's notification (delivered
            or not); False if it had already been claimed or the ledger
            could not be written.
        """
        now = normalize_now(now)
        period = period_key(now)
        log_fields = {"account_id": account.account_id, "threshold": kind.value, "period": period}

        try:
            claimed = self._claim(account.account_id, kind, period, usage_count, quota, now)
        except SQLAlchemyError:
            logger.error("notification.ledger_failed", exc_info=True, extra=log_fields)
            return False
        if not claimed:
            logger.debug("notification.already_sent", extra=log_fields)
            return False

        delivered = self._deliver(account.email, render_threshold(kind, usage_count, quota), **log_fields)

        try:
            with get_db_session() as session:
                session.execute(
                    update(usage_notifications)
                    .where(usage_notifications.c.account_id == account.account_id)
                    .where(usage_notifications.c.threshold == kind.value)
                    .where(usage_notifications.c.period == period)
                    .values(delivered=delivered, error=None if delivered else "delivery failed")
                )
        except SQLAlchemyError:
            logger.error("notification.ledger_failed", exc_info=True, extra=log_fields)

        logger.info("notification.sent", extra={**log_fields, "usage_count": usage_count, "quota": quota, "delivered": delivered})
        return True

    def notify_upgrade(self, account: Account, plan_name: str) -> bool:
        """Upgrade confirmation; not deduplicated."""
        return self._deliver(
            account.email,
            upgrade_success(plan_name),
            account_id=account.account_id,
            notification=NotificationKind.UPGRADE_SUCCESS.value,
        )


def get_notifier() -> ThresholdNotifier:
    return ThresholdNotifier()
