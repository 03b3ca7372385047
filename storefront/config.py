"""Configuration settings for the storefront API."""
import os
from urllib.parse import quote_plus


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
IS_PRODUCTION = ENVIRONMENT == "production"

# ======================================================
# DATABASE
# ======================================================

DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))
DB_NAME = os.getenv("DB_NAME", "sufi_essences")
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")


def _build_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        # Heroku/Neon style URLs use the legacy scheme
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url
    return (
        f"postgresql://{quote_plus(DB_USER)}:{quote_plus(DB_PASSWORD)}"
        f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    )


DATABASE_URL = _build_database_url()

DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "0"))
DB_POOL_TIMEOUT = float(os.getenv("DB_POOL_TIMEOUT", "2"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
DB_SSLMODE = os.getenv("DB_SSLMODE")  # e.g. "require" for Neon

# ======================================================
# AUTH
# ======================================================

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    if IS_PRODUCTION:
        raise RuntimeError("SECRET_KEY must be set in environment variables")
    SECRET_KEY = "dev-only-insecure-secret"

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "7"))

# Lets a request authenticate with a bare profile id. Never honoured in production.
DIRECT_LOGIN_ENABLED = _env_bool("DIRECT_LOGIN_ENABLED") and not IS_PRODUCTION
DIRECT_LOGIN_REQUESTED = _env_bool("DIRECT_LOGIN_ENABLED")
DIRECT_LOGIN_HEADER = "X-Direct-Login-User"

# ======================================================
# HTTP
# ======================================================

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", FRONTEND_URL).split(",")
    if origin.strip()
]

# ======================================================
# PRICING
# ======================================================

CURRENCY = os.getenv("CURRENCY", "INR")
TAX_RATE = float(os.getenv("TAX_RATE", "0.18"))  # GST

# ======================================================
# LOGGING
# ======================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").lower()

SERVICE_NAME = "sufi-storefront"
API_VERSION = "1.0.0"
