# flake8: noqa
"""
Development environment settings for the household ledger backend.

Extends base settings with a local PostgreSQL database, permissive CORS for
the web console and a rotating debug log file under backend/logs/.
"""

from .base import *
import logging
from .utils import load_environment_config

config = load_environment_config("development")

ENVIRONMENT = "development"

DEBUG = True
SECRET_KEY = config("SECRET_KEY", default="django-insecure-ledger-dev-key")
ALLOWED_HOSTS = ["localhost", "127.0.0.1", "0.0.0.0"]

# Local web console (Vite) and the mobile emulator
CORS_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8081",
]
CORS_ALLOW_ALL_ORIGINS = config("CORS_ALLOW_ALL_ORIGINS", default=True, cast=bool)

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": config("POSTGRES_DB", default="household_ledger"),
        "USER": config("POSTGRES_USER", default="postgres"),
        "PASSWORD": config("POSTGRES_PASSWORD", default="postgres"),
        "HOST": config("DB_HOST", default="localhost"),
        "PORT": config("DB_PORT", default="5432"),
    }
}

# =============================================================================
# LOGGING
# =============================================================================

DEV_LOG_DIR = BASE_DIR / "logs"
os.makedirs(DEV_LOG_DIR, exist_ok=True)

LOGGING["handlers"]["dev_file"] = {
    "level": "DEBUG",
    "class": "logging.handlers.RotatingFileHandler",
    "filename": DEV_LOG_DIR / "ledger_dev.log",
    "maxBytes": 10 * 1024 * 1024,
    "backupCount": 3,
    "formatter": "structured",
    "encoding": "utf-8",
}

for logger_name in ["django", "users", "ledger"]:
    LOGGING["loggers"][logger_name].update(
        {"handlers": ["console", "dev_file"], "level": "DEBUG"}
    )

# Set to DEBUG to print every SQL statement
LOGGING["loggers"]["django.db.backends"]["level"] = config(
    "DB_QUERY_LOGGING_LEVEL", default="INFO"
)

logging.getLogger(__name__).info(
    "Development settings loaded",
    extra={
        "environment": ENVIRONMENT,
        "database": DATABASES["default"]["NAME"],
        "action": "environment_startup",
        "component": "settings",
    },
)
