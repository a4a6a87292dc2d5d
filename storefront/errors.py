"""
Common Error Messages

Centralized user-facing messages for cart failures.
"""

# Cart errors
ERROR_CART_UNAVAILABLE = "Cart service unavailable"
ERROR_CART_NOT_READY = "Cart is still loading"
ERROR_CART_SAVE_FAILED = "Could not save your cart, changes were reverted"
ERROR_CART_LOAD_FAILED = "Could not load your cart"

# Input errors
ERROR_INVALID_QUANTITY = "Quantity must be a positive integer"
ERROR_BULK_LENGTH_MISMATCH = "Products and quantities must have the same length"

# Catalog errors
ERROR_PRODUCT_NOT_FOUND = "Product not found"
ERROR_VARIANT_NOT_FOUND = "Variant not found"
ERROR_VARIANT_INACTIVE = "Variant is not available"
ERROR_COMBO_NOT_FOUND = "Combo not found"


class CartError(Exception):
    """Base error for the cart subsystem."""


class ValidationError(CartError, ValueError):
    """Malformed mutation input or raw payload. Raised before any state change."""


class PersistenceError(CartError):
    """Storage load/save failure for one cart owner."""

    def __init__(self, message: str = ERROR_CART_UNAVAILABLE, owner: str | None = None):
        super().__init__(message)
        self.owner = owner


class CartNotReadyError(CartError):
    """Mutation attempted before the cart finished loading or after it was closed."""
