"""
Centralized configuration module for application-wide settings.

Values are read from environment variables once at import time. The app
factory loads a `.env` file (python-dotenv) before this module is imported
when DATABASE_URL is not already defined by the environment.
"""

import logging
import os
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

# ===========================
# Timezone Configuration
# ===========================


def get_app_timezone() -> ZoneInfo:
    """
    Get the application timezone from environment variable.

    Returns:
        ZoneInfo: Application timezone (defaults to UTC if not configured)

    Environment Variables:
        TZ: Timezone identifier (e.g., 'America/Sao_Paulo', 'UTC')
            Default: 'UTC'
    """
    tz_name = os.getenv("TZ", "UTC")

    try:
        return ZoneInfo(tz_name)
    except Exception as e:
        logger.warning(
            f"Invalid timezone '{tz_name}' specified in TZ environment variable. "
            f"Falling back to UTC. Error: {e}"
        )
        return ZoneInfo("UTC")


APP_TZ = get_app_timezone()


# ===========================
# Database Configuration
# ===========================


def get_database_url() -> str:
    """Return the SQLAlchemy URL used by the lazy engine."""
    return os.getenv("DATABASE_URL", "sqlite:///./commissions.db")


# ===========================
# Commission Close Configuration
# ===========================


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            f"Invalid integer for {name}: '{raw}'. Using default {default}.",
            extra={"context": {"env_var": name}},
        )
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def get_payable_due_days() -> int:
    """
    Days between period close and the due date of the emitted payable.

    Environment Variables:
        COMMISSION_PAYABLE_DUE_DAYS: calendar days, default 7
    """
    days = _get_int("COMMISSION_PAYABLE_DUE_DAYS", 7)
    if days < 0:
        logger.warning(
            "COMMISSION_PAYABLE_DUE_DAYS cannot be negative - using 7",
            extra={"context": {"value": days}},
        )
        return 7
    return days


def get_payable_category() -> str:
    """Category tag attached to payables generated by period close."""
    return os.getenv("COMMISSION_PAYABLE_CATEGORY", "COMISSAO").strip() or "COMISSAO"


def get_professional_placeholder() -> str:
    """Name used in payable descriptions when the directory lookup fails."""
    return os.getenv("COMMISSION_PROFESSIONAL_PLACEHOLDER", "Profissional")


def get_atomic_close_enabled() -> bool:
    """
    Whether advance deductions and the period status write share a transaction.

    Environment Variables:
        COMMISSION_ATOMIC_CLOSE: "true" (default) or "false" to commit each
            step of the close independently.
    """
    enabled = _get_bool("COMMISSION_ATOMIC_CLOSE", True)
    if not enabled:
        logger.warning(
            "Atomic period close is DISABLED - each close step commits independently",
            extra={"context": {"COMMISSION_ATOMIC_CLOSE": os.getenv("COMMISSION_ATOMIC_CLOSE")}},
        )
    return enabled


PAYABLE_DUE_DAYS = get_payable_due_days()
PAYABLE_CATEGORY = get_payable_category()
PROFESSIONAL_PLACEHOLDER = get_professional_placeholder()
ATOMIC_CLOSE = get_atomic_close_enabled()


def log_commission_config():
    """
    Log the active commission configuration.

    Should be called during application startup.
    """
    logger.info(
        "Commission configuration initialized",
        extra={
            "context": {
                "timezone": str(APP_TZ),
                "payable_due_days": PAYABLE_DUE_DAYS,
                "payable_category": PAYABLE_CATEGORY,
                "atomic_close": ATOMIC_CLOSE,
            }
        },
    )
