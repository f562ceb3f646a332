"""
Governance Configuration
Single source of truth for environment settings, bounds & thresholds
"""
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# =========================
# Environment
# =========================

DATABASE_URL = os.getenv("DATABASE_URL")
DB_ECHO = _env_flag("DB_ECHO")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = _env_flag("LOG_JSON")
LOG_FILE = os.getenv("LOG_FILE") or None

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:8000"
).split(",")


def get_database_url() -> str:
    """Resolve the database URL at call time (tests may set it late)."""
    url = os.getenv("DATABASE_URL") or DATABASE_URL
    if not url:
        raise ValueError("DATABASE_URL environment variable is not set")
    return url


# =========================
# Bounds (inclusive)
# =========================

CONFIDENCE_BOUNDS = (0.0, 1.0)
DPI_BOUNDS = (0, 100)

# =========================
# Pressure level buckets
# =========================
# dpi < upper bound -> level; anything at or above the last bound is CRITICAL

PRESSURE_LEVEL_THRESHOLDS = (
    (25, "LOW"),
    (50, "MODERATE"),
    (75, "HIGH"),
)
PRESSURE_LEVEL_CEILING = "CRITICAL"

# =========================
# Control plane defaults
# =========================

DEFAULT_SYSTEM_PAUSE_REASON = "System is paused."
DEFAULT_USER_PAUSE_REASON = "User is paused."
DEFAULT_USER_PAUSE_REQUEST_REASON = "User paused system"
DEFAULT_USER_RESUME_REQUEST_REASON = "User resumed system"

# =========================
# Session defaults
# =========================

DEFAULT_SESSION_TYPE = "ASSESSMENT"
DEFAULT_SESSION_PURPOSE = "New session"
BOOTSTRAP_SESSION_PURPOSE = "Bootstrap test session"
