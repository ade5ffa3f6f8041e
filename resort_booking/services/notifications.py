"""
Outbox delivery of booking and commission notifications.

Services enqueue outbox rows in the same transaction as the state change they
announce. dispatch_pending_notifications() delivers them afterwards, at least
once; a delivery failure is recorded on the row and never touches booking state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests
import structlog
from sqlalchemy.engine import Engine

from resort_booking.config import NOTIFICATION_MAX_ATTEMPTS, NOTIFICATION_WEBHOOK_URL
from resort_booking.db.readers.outbox import list_pending_notifications
from resort_booking.db.writers.outbox import mark_notification_failed, mark_notification_sent
from resort_booking.metrics import notifications_sent
from resort_booking.models.enums import NotificationKind
from resort_booking.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 10


class Notifier(Protocol):
    def send_booking_confirmation(self, payload: dict[str, Any]) -> None: ...

    def send_booking_cancellation(self, payload: dict[str, Any]) -> None: ...

    def send_commission_earned(self, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Writes notifications to the log. Used when no delivery webhook is configured."""

    def send_booking_confirmation(self, payload: dict[str, Any]) -> None:
        logger.info("notification_booking_confirmation", **payload)

    def send_booking_cancellation(self, payload: dict[str, Any]) -> None:
        logger.info("notification_booking_cancellation", **payload)

    def send_commission_earned(self, payload: dict[str, Any]) -> None:
        logger.info("notification_commission_earned", **payload)


class WebhookNotifier:
    """
    Posts notifications to the mail service webhook.

    Body: {"kind": "<NotificationKind>", "payload": {...}}. Any non-2xx answer
    raises so the outbox keeps the row for another attempt.
    """

    def __init__(
        self,
        url: str,
        timeout: float = WEBHOOK_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        response = self.session.post(
            self.url,
            json={"kind": kind.value, "payload": payload},
            timeout=self.timeout,
        )
        response.raise_for_status()

    def send_booking_confirmation(self, payload: dict[str, Any]) -> None:
        self._post(NotificationKind.BOOKING_CONFIRMATION, payload)

    def send_booking_cancellation(self, payload: dict[str, Any]) -> None:
        self._post(NotificationKind.BOOKING_CANCELLATION, payload)

    def send_commission_earned(self, payload: dict[str, Any]) -> None:
        self._post(NotificationKind.COMMISSION_EARNED, payload)


def get_default_notifier() -> Notifier:
    if NOTIFICATION_WEBHOOK_URL:
        return WebhookNotifier(NOTIFICATION_WEBHOOK_URL)
    return LoggingNotifier()


_SENDERS = {
    NotificationKind.BOOKING_CONFIRMATION.value: "send_booking_confirmation",
    NotificationKind.BOOKING_CANCELLATION.value: "send_booking_cancellation",
    NotificationKind.COMMISSION_EARNED.value: "send_commission_earned",
}


@dataclass(frozen=True)
class DispatchSummary:
    sent: int = 0
    failed: int = 0


def dispatch_pending_notifications(
    engine: Engine,
    notifier: Notifier,
    limit: int = 100,
    max_attempts: int = NOTIFICATION_MAX_ATTEMPTS,
) -> DispatchSummary:
    """
    Deliver pending outbox rows, oldest first.

    Each row is delivered and marked in its own short transaction; the
    notifier call itself runs with no connection held.

    Args:
        engine (Engine): SQLAlchemy engine.
        notifier (Notifier): Delivery backend.
        limit (int): Maximum rows handled in this pass.
        max_attempts (int): Attempts before a row is marked FAILED.

    Returns:
        DispatchSummary: Counts of delivered and failed rows.
    """
    with engine.connect() as conn:
        pending = list_pending_notifications(conn, limit=limit)

    sent = failed = 0
    for row in pending:
        kind = row["kind"]
        attempts = (row["attempts"] or 0) + 1
        sender = _SENDERS.get(kind)
        try:
            if sender is None:
                raise ValueError(f"Unknown notification kind: {kind}")
            getattr(notifier, sender)(row["payload"])
        except Exception as e:
            failed += 1
            notifications_sent.labels(kind=kind, status="failed").inc()
            logger.exception(
                "notification_delivery_failed",
                notification_id=row["id"],
                kind=kind,
                attempts=attempts,
                error=str(e),
            )
            with engine.begin() as conn:
                mark_notification_failed(conn, row["id"], attempts, str(e), max_attempts)
            continue

        sent += 1
        notifications_sent.labels(kind=kind, status="sent").inc()
        with engine.begin() as conn:
            mark_notification_sent(conn, row["id"], utc_now())

    if pending:
        logger.info("notifications_dispatched", sent=sent, failed=failed)
    return DispatchSummary(sent=sent, failed=failed)
