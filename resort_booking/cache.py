"""
In-memory day-rate cache with TTL.

Holds channel manager day rates for the availability calendar only. Allocation
always queries the channel manager directly and never reads this cache.

For deployments with several instances, each keeps its own cache; the short
TTL bounds how stale a calendar can be.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from threading import Lock
from typing import TYPE_CHECKING

from resort_booking.config import RATE_CACHE_TTL_SECONDS
from resort_booking.metrics import rate_cache_hits, rate_cache_misses
from resort_booking.utils.datetime import utc_now

if TYPE_CHECKING:
    from resort_booking.channel.adapter import DayRate

RateKey = tuple[tuple[int, ...], date, date]


class RateCache:
    """
    Day rates keyed by (property ids, first day, last day) with expiry.

    Example:
        >>> cache = RateCache(ttl_seconds=60)
        >>> cache.set([101, 102], date(2025, 7, 1), date(2025, 7, 31), rates)
        >>> cache.get([102, 101], date(2025, 7, 1), date(2025, 7, 31)) is rates
        True
    """

    def __init__(self, ttl_seconds: int = RATE_CACHE_TTL_SECONDS):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._cache: dict[RateKey, tuple[dict[int, list[DayRate]], datetime]] = {}
        self._lock = Lock()

    @staticmethod
    def _key(property_ids: list[int], date_from: date, date_to: date) -> RateKey:
        return tuple(sorted(property_ids)), date_from, date_to

    def get(
        self, property_ids: list[int], date_from: date, date_to: date
    ) -> dict[int, list[DayRate]] | None:
        """
        Cached rates if present and not expired.

        Returns:
            Rates per property, or None on a miss
        """
        key = self._key(property_ids, date_from, date_to)
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                rates, expires_at = entry
                if utc_now() < expires_at:
                    rate_cache_hits.inc()
                    return rates
                del self._cache[key]
        rate_cache_misses.inc()
        return None

    def set(
        self,
        property_ids: list[int],
        date_from: date,
        date_to: date,
        rates: dict[int, list[DayRate]],
    ) -> None:
        key = self._key(property_ids, date_from, date_to)
        with self._lock:
            self._cache[key] = (rates, utc_now() + self.ttl)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        return len(self._cache)


rate_cache = RateCache()
