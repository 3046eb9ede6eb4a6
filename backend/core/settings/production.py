# flake8: noqa
"""
Production environment settings for the household ledger backend.

Extends base settings with hardened security headers, pooled PostgreSQL
connections, whitenoise static files and JSON log files for aggregation.
"""

from .base import *
import logging
from .utils import load_environment_config

config = load_environment_config("production")

ENVIRONMENT = "production"


def _split_csv(value):
    return [item.strip() for item in value.split(",") if item.strip()]


# =============================================================================
# SECURITY
# =============================================================================

DEBUG = False
SECRET_KEY = config("SECRET_KEY")
ALLOWED_HOSTS = config("ALLOWED_HOSTS", default="api.household-ledger.app", cast=_split_csv)

CORS_ALLOWED_ORIGINS = config(
    "CORS_ALLOWED_ORIGINS", default="https://household-ledger.app", cast=_split_csv
)
CORS_ALLOW_ALL_ORIGINS = False

SECURE_SSL_REDIRECT = config("SECURE_SSL_REDIRECT", default=True, cast=bool)
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_CONTENT_TYPE_NOSNIFF = True
SECURE_HSTS_SECONDS = 60 * 60 * 24 * 30

# =============================================================================
# DATABASE
# =============================================================================

# lock_timeout bounds row-lock waits; a timeout surfaces as ConflictError (409).
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": config("POSTGRES_DB"),
        "USER": config("POSTGRES_USER"),
        "PASSWORD": config("POSTGRES_PASSWORD"),
        "HOST": config("DB_HOST"),
        "PORT": config("DB_PORT", default="5432"),
        "CONN_MAX_AGE": 60,
        "OPTIONS": {
            "connect_timeout": 5,
            "options": f"-c lock_timeout={config('DB_LOCK_TIMEOUT_MS', default=5000, cast=int)}",
        },
    }
}

# =============================================================================
# LOGGING (JSON files for aggregation)
# =============================================================================

LOG_DIR = config("LOG_DIR", default="/var/log/household-ledger")
os.makedirs(LOG_DIR, exist_ok=True)


def _json_file_handler(filename, level, max_mb):
    return {
        "level": level,
        "class": "logging.handlers.RotatingFileHandler",
        "filename": os.path.join(LOG_DIR, filename),
        "maxBytes": max_mb * 1024 * 1024,
        "backupCount": 10,
        "formatter": "json",
        "encoding": "utf-8",
    }


LOGGING["handlers"].update(
    {
        "ledger_file": _json_file_handler("ledger.log", "INFO", 100),
        "error_file": _json_file_handler("errors.log", "ERROR", 50),
        "security_file": _json_file_handler("security.log", "WARNING", 50),
    }
)

for logger_name in ["django", "users", "ledger"]:
    LOGGING["loggers"][logger_name].update(
        {"handlers": ["console", "ledger_file", "error_file"], "level": "INFO"}
    )

LOGGING["loggers"]["django.security"]["handlers"] = ["security_file"]
LOGGING["loggers"]["django.db.backends"]["level"] = "ERROR"

# =============================================================================
# STATIC FILES
# =============================================================================

MIDDLEWARE.insert(1, "whitenoise.middleware.WhiteNoiseMiddleware")
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
}

logging.getLogger(__name__).info(
    "Production settings loaded",
    extra={
        "environment": ENVIRONMENT,
        "allowed_hosts": ALLOWED_HOSTS,
        "log_dir": LOG_DIR,
        "action": "environment_startup",
        "component": "settings",
    },
)
