"""Cart package: line models, pricing, storage, store, merge and session."""
from .models import BaseLine, CartLine, CartOwner, ComboLine, LineKey, VariantLine
from .pricing import effective_price
from .store import CartEvent, CartState, CartStore
from .merge import MergeAnomaly, MergeResolver, merge_lines
from .service import CartSession, create_cart_session

__all__ = [
    "BaseLine",
    "CartLine",
    "CartOwner",
    "ComboLine",
    "LineKey",
    "VariantLine",
    "effective_price",
    "CartEvent",
    "CartState",
    "CartStore",
    "MergeAnomaly",
    "MergeResolver",
    "merge_lines",
    "CartSession",
    "create_cart_session",
]
