import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

SCHEMA = "settlement"

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS")
if not ALLOWED_ORIGINS_RAW:
    raise ValueError("ALLOWED_ORIGINS must be set in the environment")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",")
]

# Payment processor
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("WEBHOOK_TOLERANCE_SECONDS", "300"))

# Travel partner webhooks (HMAC-SHA256 over the raw body)
PARTNER_WEBHOOK_SECRET = os.getenv("PARTNER_WEBHOOK_SECRET", "")

# Scheduled maintenance endpoints
CRON_SECRET = os.getenv("CRON_SECRET", "")

# Booking lifecycle
PENDING_BOOKING_TTL_MINUTES = int(os.getenv("PENDING_BOOKING_TTL_MINUTES", "30"))
HOLD_TTL_MINUTES = int(os.getenv("HOLD_TTL_MINUTES", "15"))
TRANSFER_BUFFER_MINUTES = int(os.getenv("TRANSFER_BUFFER_MINUTES", "180"))
MIN_DRIVER_AGE = int(os.getenv("MIN_DRIVER_AGE", "21"))

# Loyalty
CLAWBACK_POINTS_ON_REFUND = os.getenv("CLAWBACK_POINTS_ON_REFUND", "false").lower() == "true"
