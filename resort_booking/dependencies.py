"""
FastAPI dependency providers.

Routes receive the engine, channel adapter and notifier through Depends(), so
tests can swap them with app.dependency_overrides.

Testing Example:
    >>> app.dependency_overrides[get_db_engine] = lambda: sqlite_engine
    >>> app.dependency_overrides[get_channel_adapter] = lambda: Mock(spec=ChannelAdapter)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Generator

from sqlalchemy.engine import Engine

from resort_booking.channel.adapter import ChannelAdapter
from resort_booking.services.notifications import Notifier, get_default_notifier


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide the database engine.

    Yields:
        Engine: SQLAlchemy database engine
    """
    from resort_booking.db.engine import engine

    yield engine


@lru_cache(maxsize=1)
def get_channel_adapter() -> ChannelAdapter:
    """Shared channel adapter; its requests.Session pools connections across requests."""
    return ChannelAdapter()


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    return get_default_notifier()
