"""
Integration tests for outbox notification delivery.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import Mock

import pytest
from sqlalchemy import insert, select
from sqlalchemy.engine import Engine

from resort_booking.db.readers.outbox import list_pending_notifications
from resort_booking.db.writers.outbox import enqueue_notification
from resort_booking.models.enums import NotificationKind
from resort_booking.models.outbox import NotificationOutbox
from resort_booking.services.notifications import dispatch_pending_notifications


def outbox_rows(engine: Engine) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        stmt = select(NotificationOutbox).order_by(NotificationOutbox.id)
        return [dict(row) for row in conn.execute(stmt).mappings()]


@pytest.fixture
def queued(sqlite_engine: Engine) -> list[int]:
    with sqlite_engine.begin() as conn:
        return [
            enqueue_notification(conn, NotificationKind.BOOKING_CONFIRMATION, {"booking_id": 1}),
            enqueue_notification(conn, NotificationKind.COMMISSION_EARNED, {"booking_id": 1}),
        ]


@pytest.mark.integration
def test_dispatch_delivers_in_order_and_marks_sent(sqlite_engine: Engine, queued: list[int]) -> None:
    notifier = Mock()

    summary = dispatch_pending_notifications(sqlite_engine, notifier)

    assert (summary.sent, summary.failed) == (2, 0)
    notifier.send_booking_confirmation.assert_called_once_with({"booking_id": 1})
    notifier.send_commission_earned.assert_called_once_with({"booking_id": 1})
    rows = outbox_rows(sqlite_engine)
    assert [r["status"] for r in rows] == ["SENT", "SENT"]
    assert all(r["sent_at"] is not None and r["attempts"] == 1 for r in rows)

    # Nothing left for the next pass
    assert dispatch_pending_notifications(sqlite_engine, notifier).sent == 0


@pytest.mark.integration
def test_failed_delivery_stays_pending_until_max_attempts(
    sqlite_engine: Engine, queued: list[int]
) -> None:
    notifier = Mock()
    notifier.send_booking_confirmation.side_effect = RuntimeError("smtp down")

    first = dispatch_pending_notifications(sqlite_engine, notifier, max_attempts=2)
    rows = outbox_rows(sqlite_engine)

    assert (first.sent, first.failed) == (1, 1)
    assert rows[0]["status"] == "PENDING"
    assert rows[0]["attempts"] == 1
    assert rows[0]["last_error"] == "smtp down"
    assert rows[1]["status"] == "SENT"

    dispatch_pending_notifications(sqlite_engine, notifier, max_attempts=2)
    rows = outbox_rows(sqlite_engine)

    assert rows[0]["status"] == "FAILED"
    assert rows[0]["attempts"] == 2
    with sqlite_engine.connect() as conn:
        assert list_pending_notifications(conn) == []


@pytest.mark.integration
def test_unknown_kind_is_recorded_as_failure(sqlite_engine: Engine) -> None:
    with sqlite_engine.begin() as conn:
        conn.execute(
            insert(NotificationOutbox).values(kind="SMS_REMINDER", payload={}, status="PENDING", attempts=0)
        )

    summary = dispatch_pending_notifications(sqlite_engine, Mock(spec=[]), max_attempts=1)

    assert summary.failed == 1
    assert outbox_rows(sqlite_engine)[0]["status"] == "FAILED"


@pytest.mark.integration
def test_dispatch_respects_limit(sqlite_engine: Engine, queued: list[int]) -> None:
    summary = dispatch_pending_notifications(sqlite_engine, Mock(), limit=1)

    assert summary.sent == 1
    assert [r["status"] for r in outbox_rows(sqlite_engine)] == ["SENT", "PENDING"]
