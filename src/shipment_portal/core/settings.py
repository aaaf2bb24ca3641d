"""Process-wide settings for the shipment portal.

get_settings() builds Settings from the environment once and validates it.
A broken configuration stops the process at startup instead of surfacing
later as a failed request. Tests call clear_settings_cache() after changing
environment variables.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import ValidationError

from shipment_portal.core.config import ConfigValidationError, Settings, validate_settings

logger = logging.getLogger(__name__)


def _describe(error: ValidationError | ConfigValidationError) -> list[str]:
    if isinstance(error, ConfigValidationError):
        return [f"{error.field or 'settings'}: {error.message}"]
    return [
        f"{'.'.join(str(part) for part in item['loc']) or 'settings'}: {item['msg']}"
        for item in error.errors()
    ]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load, validate and cache the settings.

    Raises:
        SystemExit: The environment does not describe a usable configuration.
    """
    try:
        settings = Settings()
        validate_settings(settings)
    except (ValidationError, ConfigValidationError) as e:
        problems = _describe(e)
        logger.critical(
            "Invalid configuration (%d problem%s):\n%s",
            len(problems),
            "" if len(problems) == 1 else "s",
            "\n".join(f"  - {p}" for p in problems),
        )
        raise SystemExit(1) from e

    logger.info(
        "Settings loaded",
        extra={
            "environment": settings.environment.value,
            "smtp_enabled": settings.smtp.enabled,
            "bucket": settings.s3.bucket,
        },
    )
    return settings


def clear_settings_cache() -> None:
    """Forget the cached settings so the next get_settings() reloads them."""
    get_settings.cache_clear()
