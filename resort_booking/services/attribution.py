"""
Last-click affiliate attribution with a rolling window.

AttributionTracker runs wherever the visitor's persistent storage lives (the
web client, or a server-side session store) and works on any string mapping:

- a NEW code overwrites the stored one and restarts the window;
- the SAME code again leaves the expiry alone (natural countdown);
- every visit carrying a code is counted as a click, fire-and-forget.

record_affiliate_click() is the server side of the click counter.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, MutableMapping, Optional, Protocol

import requests
import structlog
from sqlalchemy.engine import Engine

from resort_booking.config import ATTRIBUTION_WINDOW_DAYS, TRACKING_API_URL
from resort_booking.db.writers.affiliates import increment_link_clicks
from resort_booking.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

STORAGE_KEY_CODE = "affiliateCode"
STORAGE_KEY_EXPIRY = "affiliateExpiry"
STORAGE_KEY_FIRST_VISIT = "affiliateFirstVisit"

CLICK_TIMEOUT_SECONDS = 5
MS_PER_DAY = 24 * 60 * 60 * 1000

_click_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="affiliate-click")


class ClickRecorder(Protocol):
    def record_click(self, code: str) -> None: ...


class HttpClickRecorder:
    """Posts clicks to POST /affiliates/clicks of the booking API."""

    def __init__(
        self,
        base_url: Optional[str] = TRACKING_API_URL,
        timeout: float = CLICK_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("TRACKING_API_URL must be set to record affiliate clicks")
        self.url = f"{base_url.rstrip('/')}/affiliates/clicks"
        self.timeout = timeout
        self.session = session or requests.Session()

    def record_click(self, code: str) -> None:
        response = self.session.post(self.url, json={"affiliate_code": code}, timeout=self.timeout)
        response.raise_for_status()


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _from_ms(value: str) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class AttributionMetadata:
    code: Optional[str]
    days_until_expiry: Optional[int]
    days_since_first_visit: Optional[int]


def _log_click_result(code: str) -> Callable[[Future], None]:
    def _done(future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.warning("affiliate_click_not_recorded", affiliate_code=code, error=str(error))
        else:
            logger.debug("affiliate_click_recorded", affiliate_code=code)

    return _done


class AttributionTracker:
    """
    Attribution state over a visitor's persistent key/value storage.

    Timestamps are stored as epoch milliseconds under affiliateCode,
    affiliateExpiry and affiliateFirstVisit.

    Example:
        >>> tracker = AttributionTracker(storage={}, click_recorder=None)
        >>> tracker.on_page_load("REEF-ALICE")
        'REEF-ALICE'
        >>> tracker.get_active_code()
        'REEF-ALICE'
    """

    def __init__(
        self,
        storage: MutableMapping[str, str],
        click_recorder: Optional[ClickRecorder] = None,
        clock: Callable[[], datetime] = utc_now,
        window_days: int = ATTRIBUTION_WINDOW_DAYS,
        executor: Optional[Executor] = None,
    ) -> None:
        self.storage = storage
        self.click_recorder = click_recorder
        self.clock = clock
        self.window = timedelta(days=window_days)
        self.executor = executor or _click_executor

    def _expiry(self) -> Optional[datetime]:
        raw = self.storage.get(STORAGE_KEY_EXPIRY)
        return _from_ms(raw) if raw is not None else None

    def _is_expired(self, now: datetime) -> bool:
        raw = self.storage.get(STORAGE_KEY_EXPIRY)
        if raw is None:
            return False
        expiry = _from_ms(raw)
        # Unreadable expiry counts as expired
        return expiry is None or now > expiry

    def _record_click(self, code: str) -> None:
        if self.click_recorder is None:
            return
        future = self.executor.submit(self.click_recorder.record_click, code)
        future.add_done_callback(_log_click_result(code))

    def on_page_load(self, ref_code: Optional[str] = None) -> Optional[str]:
        """
        Handle a page view, optionally carrying a referral code.

        Expired state is cleared first, so a code arriving after expiry starts
        a fresh window even if it equals the expired one.

        Args:
            ref_code: Value of the referral parameter, if any.

        Returns:
            The active code after this page view.
        """
        now = self.clock()
        if self._is_expired(now):
            logger.info("affiliate_code_expired", affiliate_code=self.storage.get(STORAGE_KEY_CODE))
            self.clear()

        if ref_code:
            self._record_click(ref_code)
            if self.storage.get(STORAGE_KEY_CODE) != ref_code:
                self.storage[STORAGE_KEY_CODE] = ref_code
                self.storage[STORAGE_KEY_EXPIRY] = str(_to_ms(now + self.window))
                if STORAGE_KEY_FIRST_VISIT not in self.storage:
                    self.storage[STORAGE_KEY_FIRST_VISIT] = str(_to_ms(now))
                logger.info("affiliate_code_stored", affiliate_code=ref_code)

        return self.get_active_code()

    def get_active_code(self) -> Optional[str]:
        """Stored code if present and not expired. Never modifies storage."""
        code = self.storage.get(STORAGE_KEY_CODE)
        if not code or self._is_expired(self.clock()):
            return None
        return code

    def clear(self) -> None:
        for key in (STORAGE_KEY_CODE, STORAGE_KEY_EXPIRY, STORAGE_KEY_FIRST_VISIT):
            self.storage.pop(key, None)

    def metadata(self) -> AttributionMetadata:
        """Active code with whole days until expiry and since the first visit."""
        now_ms = _to_ms(self.clock())
        expiry = self.storage.get(STORAGE_KEY_EXPIRY)
        first_visit = self.storage.get(STORAGE_KEY_FIRST_VISIT)

        days_until_expiry = None
        if expiry is not None and _from_ms(expiry) is not None:
            days_until_expiry = (int(expiry) - now_ms) // MS_PER_DAY
        days_since_first_visit = None
        if first_visit is not None and _from_ms(first_visit) is not None:
            days_since_first_visit = (now_ms - int(first_visit)) // MS_PER_DAY

        return AttributionMetadata(
            code=self.get_active_code(),
            days_until_expiry=days_until_expiry,
            days_since_first_visit=days_since_first_visit,
        )


def record_affiliate_click(engine: Engine, code: str) -> bool:
    """
    Increment the click counter of an ACTIVE link.

    Returns:
        bool: False if the code is unknown or its link is not active.
    """
    with engine.begin() as conn:
        counted = increment_link_clicks(conn, code)
    logger.info("affiliate_click", affiliate_code=code, counted=counted)
    return counted
