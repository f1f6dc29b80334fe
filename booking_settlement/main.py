# booking_settlement/main.py

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booking_settlement.config import (
    ALLOWED_ORIGINS,
    CRON_SECRET,
    PARTNER_WEBHOOK_SECRET,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
)
from booking_settlement.errors import PaymentGatewayError, SettlementError, ValidationError
from booking_settlement.logging_config import setup_logging
from booking_settlement.middleware import RequestIDMiddleware
from booking_settlement.routes.bookings import router as bookings_router
from booking_settlement.routes.health import router as health_router
from booking_settlement.routes.loyalty import router as loyalty_router
from booking_settlement.routes.maintenance import router as maintenance_router
from booking_settlement.routes.metrics import router as metrics_router
from booking_settlement.routes.referrals import router as referrals_router
from booking_settlement.routes.resources import router as resources_router
from booking_settlement.routes.webhook import router as webhook_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

GENERIC_SERVER_ERROR = "Booking could not be completed, please contact support"

app = FastAPI(
    title="Booking Settlement API",
    description="Bookings, payment settlement and loyalty for hotels, cars, tours and transfers",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    """Render domain errors as ``{"error", "message", "details"}``."""
    body = exc.to_dict()
    if isinstance(exc, PaymentGatewayError):
        body["message"] = PaymentGatewayError.public_message
        body["details"] = {}
    elif exc.status_code >= 500:
        logger.error("request_failed", error=exc.error, message=exc.message, details=exc.details)
        body["message"] = GENERIC_SERVER_ERROR
        body["details"] = {}
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation errors are 400 with per-field details."""
    error = ValidationError.from_errors(exc.errors())
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_dict())


# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(bookings_router, tags=["Bookings"])
app.include_router(resources_router, tags=["Resources"])
app.include_router(loyalty_router, prefix="/loyalty", tags=["Loyalty"])
app.include_router(referrals_router, prefix="/referrals", tags=["Referrals"])
app.include_router(webhook_router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(maintenance_router, prefix="/maintenance", tags=["Maintenance"])


@app.on_event("startup")
def startup_event() -> None:
    """Warn about missing secrets; the service still starts so health checks work."""
    logger.info("FastAPI application starting up...")

    for name, value in (
        ("STRIPE_SECRET_KEY", STRIPE_SECRET_KEY),
        ("STRIPE_WEBHOOK_SECRET", STRIPE_WEBHOOK_SECRET),
        ("PARTNER_WEBHOOK_SECRET", PARTNER_WEBHOOK_SECRET),
        ("CRON_SECRET", CRON_SECRET),
    ):
        if not value:
            logger.warning("config_secret_missing", setting=name)

    logger.info("FastAPI application initialized")
