import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

SCHEMA = "resort"

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS")
if not ALLOWED_ORIGINS_RAW:
    raise ValueError("ALLOWED_ORIGINS must be set in the environment")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",")
]

# Channel manager (Smoobu-style API)
CHANNEL_API_URL = os.getenv("CHANNEL_API_URL", "https://login.smoobu.com/api/")
CHANNEL_API_KEY = os.getenv("CHANNEL_API_KEY", "")
CHANNEL_TIMEOUT_SECONDS = float(os.getenv("CHANNEL_TIMEOUT_SECONDS", "10"))
CHANNEL_MAX_RETRIES = int(os.getenv("CHANNEL_MAX_RETRIES", "2"))
CHANNEL_MAX_CONCURRENT_REQUESTS = int(os.getenv("CHANNEL_MAX_CONCURRENT_REQUESTS", "4"))
RATE_CACHE_TTL_SECONDS = int(os.getenv("RATE_CACHE_TTL_SECONDS", "60"))

# Pricing and affiliates
REFERRAL_DISCOUNT_PERCENT = Decimal(os.getenv("REFERRAL_DISCOUNT_PERCENT", "5"))
ATTRIBUTION_WINDOW_DAYS = int(os.getenv("ATTRIBUTION_WINDOW_DAYS", "90"))
TRACKING_API_URL = os.getenv("TRACKING_API_URL")

# Booking lifecycle
STALE_BOOKING_DAYS = int(os.getenv("STALE_BOOKING_DAYS", "7"))

# Notifications
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")
NOTIFICATION_MAX_ATTEMPTS = int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "5"))
