"""
Logging setup for the cart engine.

The root logger is configured when this module is first imported. Cart code
asks for module loggers and never logs a raw owner id or session token:

    from storefront.logging import get_logger, sanitize_id_for_logging
    logger = get_logger(__name__)

    logger.warning(f"Cart {sanitize_id_for_logging(token)} save failed")
"""

import logging
import os
import sys
from functools import cache

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"

# Hosted runtimes add their own timestamps
HOSTED_ENV_FLAGS = ("VERCEL", "CF_PAGES")

# Storage clients are chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore")

ID_LOG_LENGTH = 8


def _log_level() -> int:
    """LOG_LEVEL from the environment, INFO when unset or unknown."""
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _is_hosted() -> bool:
    return any(os.environ.get(flag) == "1" for flag in HOSTED_ENV_FLAGS)


def _configure_root_logger() -> None:
    """Attach a stdout handler to the root logger unless the host app already did."""
    root = logging.getLogger()
    if root.handlers:
        return

    level = _log_level()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE if _is_hosted() else LOG_FORMAT))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


_configure_root_logger()


@cache
def get_logger(name: str) -> logging.Logger:
    """Module logger for cart code (pass `__name__`)."""
    return logging.getLogger(name)


def _escape_log_injection(value: str) -> str:
    # Line breaks in an id would forge extra log records
    return (
        value.replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )


def sanitize_id_for_logging(id_value: str | None) -> str:
    """
    Shorten a cart owner id or guest session token for log output.

    Guest tokens act as bearer credentials for a guest cart, so only a short
    prefix is logged, with control characters escaped.

    Returns "N/A" for an empty id.
    """
    if not id_value:
        return "N/A"
    return _escape_log_injection(str(id_value))[:ID_LOG_LENGTH]


__all__ = [
    "LOG_FORMAT",
    "LOG_FORMAT_SIMPLE",
    "get_logger",
    "sanitize_id_for_logging",
]
