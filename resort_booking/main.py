# resort_booking/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from resort_booking.config import ALLOWED_ORIGINS
from resort_booking.logging_config import setup_logging
from resort_booking.middleware import RequestIDMiddleware
from resort_booking.routes.affiliates import router as affiliates_router
from resort_booking.routes.bookings import router as bookings_router
from resort_booking.routes.collections import router as collections_router
from resort_booking.routes.health import router as health_router
from resort_booking.routes.metrics import router as metrics_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Resort Booking API",
    description="Availability, pricing and fulfillment of resort unit stays",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)

app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(collections_router, tags=["Collections"])
app.include_router(bookings_router, tags=["Bookings"])
app.include_router(affiliates_router, tags=["Affiliates"])


@app.on_event("startup")
def startup_event() -> None:
    """Log startup and warn early if the channel manager rejects our credentials."""
    from resort_booking.config import CHANNEL_API_KEY
    from resort_booking.dependencies import get_channel_adapter

    logger.info("application_starting")

    if CHANNEL_API_KEY and not get_channel_adapter().test_connection():
        logger.warning("channel_manager_unreachable_at_startup")

    logger.info("application_initialized")
