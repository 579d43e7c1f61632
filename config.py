"""
Runtime configuration for the store API.

Everything is read from environment variables once at import time.
"""
import logging
import os

import structlog

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
DB_TIMEOUT_MS = int(os.getenv("DB_TIMEOUT_MS", 3000))

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", 7))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))

NOTIFICATION_TTL_DAYS = int(os.getenv("NOTIFICATION_TTL_DAYS", 30))

FRONTEND_URL = os.getenv("FRONTEND_URL")
CORS_ORIGINS = [
    origin
    for origin in [
        FRONTEND_URL,
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:4173",
    ]
    if origin
]

BUSINESS_INFO = {
    "business_name": "Jai Bhavani Cement Agency",
    "phone": "+91 8983463892",
    "email": "dashrathpatel7890@gmail.com",
    "address": {
        "line1": "After Leo kids School, Anjurphata Road",
        "line2": "near Ratan Talkies, Kamatghar",
        "city": "Bhiwandi",
        "state": "Maharashtra",
        "pincode": "421302",
        "country": "India",
    },
    "business_hours": {"weekdays": "Monday - Sunday", "hours": "9:00 AM - 7:30 PM"},
    "services": ["Cement Supply", "Construction Materials", "Bulk Orders", "Delivery Services"],
}


def is_production() -> bool:
    return ENVIRONMENT == "production"


def configure_logging() -> None:
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(format="%(message)s", level=level)
    renderer = structlog.processors.JSONRenderer() if is_production() else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
