"""
Storefront Cart Core

This package contains the cart domain model and its synchronization engine:
- cart: line model, price resolution, storage adapters, store, merge, session
- services: catalog models, normalization boundary, Supabase repositories
- db: Supabase and Upstash Redis clients
- realtime: cart change broadcast

Note: Imports are lazy so that importing the package does not require
client credentials to be configured.
"""

__all__ = [
    "CartSession",
    "create_cart_session",
    "get_supabase",
    "get_redis",
]


def __getattr__(name):
    """Lazy attribute access for clean module loading."""
    if name == "CartSession":
        from storefront.cart.service import CartSession
        return CartSession
    if name == "create_cart_session":
        from storefront.cart.service import create_cart_session
        return create_cart_session
    if name == "get_supabase":
        from storefront.db import get_supabase
        return get_supabase
    if name == "get_redis":
        from storefront.db import get_redis
        return get_redis
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
