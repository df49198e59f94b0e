"""Tests for threshold detection and the per-period notification ledger."""
import logging
from datetime import datetime, timezone

from unittest.mock import patch

from sqlalchemy import select

from archilex.core.database import get_db_session, usage_notifications
from archilex.features.notifications.service import ThresholdNotifier, detect_crossings, was_notified
from archilex.features.notifications.templates import usage_limit_reached
from archilex.features.notifications.transport import LogOnlyTransport, SmtpTransport
from archilex.models.notification import NotificationKind
from archilex.tests.mocks import NOW, FailingTransport, RecordingTransport


class TestDetectCrossings:
    def test_single_step_onto_80_percent(self):
        assert detect_crossings(7, 8, 10) == [NotificationKind.USAGE_80]

    def test_single_step_onto_quota(self):
        assert detect_crossings(9, 10, 10) == [NotificationKind.USAGE_100]

    def test_no_crossing_inside_band(self):
        assert detect_crossings(8, 9, 10) == []
        assert detect_crossings(2, 3, 10) == []

    def test_batched_increment_cannot_skip_thresholds(self):
        assert detect_crossings(7, 10, 10) == [NotificationKind.USAGE_80, NotificationKind.USAGE_100]
        assert detect_crossings(150, 170, 200) == [NotificationKind.USAGE_80]

    def test_unlimited_and_zero_quota_never_fire(self):
        assert detect_crossings(0, 1000, -1) == []
        assert detect_crossings(0, 1, 0) == []

    def test_quota_of_one_has_no_warning(self):
        assert detect_crossings(0, 1, 1) == [NotificationKind.USAGE_100]


def test_notify_sends_once_per_period(make_account):
    transport = RecordingTransport()
    notifier = ThresholdNotifier(transport)
    account = make_account(usage_count=8)

    assert notifier.notify(account, NotificationKind.USAGE_80, 8, 10, NOW) is True
    assert notifier.notify(account, NotificationKind.USAGE_80, 8, 10, NOW) is False

    assert len(transport.sent) == 1
    to, content = transport.sent[0]
    assert to == account.email
    assert "8 / 10" in content.html
    assert was_notified(account.account_id, NotificationKind.USAGE_80, NOW)
    assert not was_notified(account.account_id, NotificationKind.USAGE_100, NOW)


def test_notify_again_in_next_period(make_account):
    transport = RecordingTransport()
    notifier = ThresholdNotifier(transport)
    account = make_account()

    notifier.notify(account, NotificationKind.USAGE_100, 10, 10, NOW)
    assert notifier.notify(account, NotificationKind.USAGE_100, 10, 10, datetime(2026, 11, 3, tzinfo=timezone.utc)) is True
    assert len(transport.sent) == 2


def test_delivery_failure_is_logged_and_swallowed(make_account, caplog):
    transport = FailingTransport()
    notifier = ThresholdNotifier(transport)
    account = make_account()

    with caplog.at_level(logging.ERROR, logger="archilex.notifications"):
        assert notifier.notify(account, NotificationKind.USAGE_100, 10, 10, NOW) is True
    assert transport.calls == 1
    assert any(r.getMessage() == "notification.delivery_failed" for r in caplog.records)

    with get_db_session() as session:
        row = session.execute(select(usage_notifications)).one()
    assert not row.delivered
    assert row.error == "delivery failed"

    # Claimed for the period even though delivery failed
    assert notifier.notify(account, NotificationKind.USAGE_100, 10, 10, NOW) is False
    assert transport.calls == 1


def test_undelivered_message_still_recorded(make_account):
    notifier = ThresholdNotifier(RecordingTransport(succeed=False))
    account = make_account()
    assert notifier.notify(account, NotificationKind.USAGE_80, 8, 10, NOW) is True
    with get_db_session() as session:
        row = session.execute(select(usage_notifications)).one()
    assert not row.delivered
    assert row.period == "2026-10"
    assert (row.usage_count, row.quota) == (8, 10)


def test_upgrade_confirmation_mentions_plan(make_account):
    transport = RecordingTransport()
    account = make_account()
    assert ThresholdNotifier(transport).notify_upgrade(account, "Professional") is True
    assert "Professional" in transport.sent[0][1].html


def test_log_only_transport_does_not_deliver():
    assert LogOnlyTransport().send("a@example.gr", usage_limit_reached(10)) is False


def test_smtp_transport_without_host_skips():
    transport = SmtpTransport()
    transport.host = None
    assert transport.send("a@example.gr", usage_limit_reached(10)) is False


def test_smtp_transport_sends_with_starttls_and_login():
    transport = SmtpTransport(host="smtp.example.gr", port=587, user="mailer", password="secret", use_tls=True)
    with patch("archilex.features.notifications.transport.smtplib.SMTP") as smtp_cls:
        server = smtp_cls.return_value.__enter__.return_value
        assert transport.send("a@example.gr", usage_limit_reached(10)) is True

    smtp_cls.assert_called_once_with("smtp.example.gr", 587, timeout=transport.timeout)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "secret")
    message = server.send_message.call_args[0][0]
    assert message["To"] == "a@example.gr"
    assert "ArchiLex" in message["Subject"]


def test_smtp_transport_reports_connection_failure():
    transport = SmtpTransport(host="smtp.example.gr")
    with patch("archilex.features.notifications.transport.smtplib.SMTP", side_effect=OSError("unreachable")):
        assert transport.send("a@example.gr", usage_limit_reached(10)) is False
