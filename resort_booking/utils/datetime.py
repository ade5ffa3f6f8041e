"""UTC datetime and stay-date utilities."""

from datetime import date, datetime, timedelta, timezone
from typing import Iterator


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    Use this instead of datetime.now() or datetime.utcnow() so every stored
    timestamp is timezone-aware and in UTC.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def nights_between(check_in: date, check_out: date) -> int:
    """
    Number of nights in the half-open stay [check_in, check_out).

    Example:
        >>> nights_between(date(2025, 1, 1), date(2025, 1, 4))
        3
    """
    return (check_out - check_in).days


def iter_nights(check_in: date, check_out: date) -> Iterator[date]:
    """Yield every night of the stay, check-out day excluded."""
    day = check_in
    while day < check_out:
        yield day
        day += timedelta(days=1)


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Half-open interval overlap test: [start_a, end_a) vs [start_b, end_b)."""
    return start_a < end_b and end_a > start_b
