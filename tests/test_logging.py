"""
Tests for logging helpers
"""

import logging

from storefront.logging import get_logger, sanitize_id_for_logging


def test_get_logger_is_cached():
    logger = get_logger("storefront.cart.store")

    assert logger is get_logger("storefront.cart.store")
    assert isinstance(logger, logging.Logger)


def test_sanitize_shortens_guest_token():
    assert sanitize_id_for_logging("guest-token-123") == "guest-to"


def test_sanitize_escapes_line_breaks():
    """Test a forged log record cannot be smuggled through an id"""
    assert sanitize_id_for_logging("a\nb") == "a\\nb"
    assert "\n" not in sanitize_id_for_logging("abcdef\nINFO - fake")


def test_sanitize_empty():
    assert sanitize_id_for_logging(None) == "N/A"
    assert sanitize_id_for_logging("") == "N/A"
