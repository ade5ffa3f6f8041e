import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.engine import Engine

from resort_booking.dependencies import get_db_engine
from resort_booking.schemas.affiliates import AffiliateClickPayload
from resort_booking.services.attribution import record_affiliate_click

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/affiliates/clicks", status_code=status.HTTP_200_OK)
def track_click(
    payload: AffiliateClickPayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, bool]:
    """
    Count a referral link click.

    Unknown and inactive codes are accepted but not counted, so the tracker
    cannot probe which codes exist.
    """
    try:
        counted = record_affiliate_click(engine, payload.affiliate_code)
        return {"success": counted}

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("affiliate_click_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
