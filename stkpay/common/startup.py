"""Startup-time helpers for safe config logging."""

import os

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from stkpay.common.logging import logger

SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "PASSKEY", "TOKEN")

STARTUP_KEYS = [
    "SERVICE_NAME",
    "DATABASE_DSN",
    "DARAJA_BASE_URL",
    "DARAJA_SHORT_CODE",
    "DARAJA_CALLBACK_URL",
    "DARAJA_TRANSACTION_TYPE",
    "DARAJA_CONSUMER_KEY",
    "DARAJA_CONSUMER_SECRET",
    "DARAJA_PASSKEY",
    "PUSH_TIMEOUT_SECONDS",
    "QUERY_TIMEOUT_SECONDS",
]


def _safe_env(name: str) -> str:
    """Return env value with secrets redacted and DSN passwords masked."""

    value = os.getenv(name)
    if value is None:
        return "<unset>"
    if any(marker in name for marker in SECRET_MARKERS):
        return "<redacted>"
    if name.endswith("_DSN"):
        try:
            return make_url(value).render_as_string(hide_password=True)
        except ArgumentError:
            return "<unparseable>"
    return value


def log_startup_config(service_name: str, keys: list[str] | None = None) -> None:
    """Log selected startup config keys for quick troubleshooting."""

    config = {"service": service_name}
    for key in keys or STARTUP_KEYS:
        config[key] = _safe_env(key)
    logger.info("startup_config=%s", config)
