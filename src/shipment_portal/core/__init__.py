"""Core configuration for the shipment portal."""

from shipment_portal.core.config import (
    AuthSettings,
    ConfigValidationError,
    DatabaseSettings,
    Environment,
    S3Settings,
    Settings,
    SMTPSettings,
    UploadSettings,
    validate_settings,
)
from shipment_portal.core.settings import clear_settings_cache, get_settings

__all__ = [
    "AuthSettings",
    "ConfigValidationError",
    "DatabaseSettings",
    "Environment",
    "S3Settings",
    "SMTPSettings",
    "Settings",
    "UploadSettings",
    "clear_settings_cache",
    "get_settings",
    "validate_settings",
]
