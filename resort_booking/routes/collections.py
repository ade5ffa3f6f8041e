from datetime import date
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Engine

from resort_booking.channel.adapter import ChannelAdapter
from resort_booking.dependencies import get_channel_adapter, get_db_engine
from resort_booking.errors import BookingError
from resort_booking.routes._helpers import http_error, money, serialize_quote
from resort_booking.services.availability import availability_calendar
from resort_booking.services.booking_intake import quote_booking

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/collections/{collection_id}/availability")
def get_availability_calendar(
    collection_id: int,
    start_date: date = Query(..., description="First date (YYYY-MM-DD)"),
    end_date: date = Query(..., description="Date after the last one shown"),
    engine: Engine = Depends(get_db_engine),
    adapter: ChannelAdapter = Depends(get_channel_adapter),
) -> dict[str, Any]:
    """
    Per-date free unit counts and nightly price, for calendar display.

    Args:
        collection_id: Collection ID
        start_date: First date of the window
        end_date: End of the window, exclusive

    Returns:
        dict: {"collection_id": ..., "days": [{"date", "available_units", "total_units", "price"}]}
    """
    try:
        days = availability_calendar(engine, adapter, collection_id, start_date, end_date)
        return {
            "collection_id": collection_id,
            "days": [
                {
                    "date": day.day.isoformat(),
                    "available_units": day.available_units,
                    "total_units": day.total_units,
                    "price": money(day.price),
                }
                for day in days
            ],
        }

    except HTTPException:
        raise
    except BookingError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception("availability_calendar_failed", collection_id=collection_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/collections/{collection_id}/quote")
def get_quote(
    collection_id: int,
    check_in: date = Query(...),
    check_out: date = Query(...),
    guests: int = Query(1, ge=1),
    affiliate_code: Optional[str] = Query(None),
    engine: Engine = Depends(get_db_engine),
    adapter: ChannelAdapter = Depends(get_channel_adapter),
) -> dict[str, Any]:
    """Price a stay, including discounts and the referral discount of an active affiliate code."""
    try:
        quote = quote_booking(
            engine,
            adapter,
            collection_id,
            check_in,
            check_out,
            guests=guests,
            affiliate_code=affiliate_code,
        )
        return serialize_quote(quote)

    except HTTPException:
        raise
    except BookingError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception("quote_failed", collection_id=collection_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
