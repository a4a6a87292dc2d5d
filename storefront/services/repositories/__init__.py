"""
Repository Pattern for Cart Database Operations

- CartItemRepository: durable cart rows per user
- CatalogRepository: products, variants and combos the cart prices from
"""
from .base import BaseRepository
from .cart_repo import CartItemRepository
from .catalog_repo import CatalogRepository

__all__ = [
    "BaseRepository",
    "CartItemRepository",
    "CatalogRepository",
]
