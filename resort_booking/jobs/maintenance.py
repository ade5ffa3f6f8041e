"""
Periodic maintenance entry point (run from cron or a scheduler).

    python -m resort_booking.jobs.maintenance
"""

import structlog
from sqlalchemy.engine import Engine

from resort_booking.config import STALE_BOOKING_DAYS
from resort_booking.db.readers.bookings import count_unsynced_booking_units
from resort_booking.logging_config import setup_logging
from resort_booking.metrics import unsynced_booking_units
from resort_booking.services.fulfillment import cancel_stale_bookings
from resort_booking.services.notifications import (
    Notifier,
    dispatch_pending_notifications,
    get_default_notifier,
)

logger = structlog.get_logger(__name__)


def run_maintenance(engine: Engine, notifier: Notifier) -> dict[str, int]:
    """
    Run every maintenance task once.

    Each task runs even if an earlier one failed.

    Returns:
        dict[str, int]: Counts per task, -1 for a task that failed.
    """
    summary = {"stale_cancelled": -1, "notifications_sent": -1, "unsynced_units": -1}

    try:
        cancelled = cancel_stale_bookings(
            engine, cancelled_by="system", older_than_days=STALE_BOOKING_DAYS
        )
        summary["stale_cancelled"] = len(cancelled)
    except Exception as e:
        logger.exception("maintenance_stale_cancel_failed", error=str(e))

    try:
        dispatched = dispatch_pending_notifications(engine, notifier)
        summary["notifications_sent"] = dispatched.sent
    except Exception as e:
        logger.exception("maintenance_notification_dispatch_failed", error=str(e))

    try:
        with engine.connect() as conn:
            unsynced = count_unsynced_booking_units(conn)
        unsynced_booking_units.set(unsynced)
        summary["unsynced_units"] = unsynced
        if unsynced:
            logger.warning("booking_units_need_reconciliation", count=unsynced)
    except Exception as e:
        logger.exception("maintenance_unsynced_count_failed", error=str(e))

    logger.info("maintenance_completed", **summary)
    return summary


def main() -> None:
    from resort_booking.db.engine import engine

    setup_logging()
    run_maintenance(engine, get_default_notifier())


if __name__ == "__main__":
    main()
