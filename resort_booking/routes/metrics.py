"""Prometheus metrics endpoint (text exposition format)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics", response_class=Response)
async def metrics() -> Any:
    """
    Prometheus scrape target.

    Example Response:
        # HELP resort_fulfillment_outcomes_total Outcomes of booking fulfillment attempts
        # TYPE resort_fulfillment_outcomes_total counter
        resort_fulfillment_outcomes_total{outcome="confirmed"} 12.0
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
