"""Turning stored payloads back into cart lines."""
import asyncio
from typing import List, Optional, Protocol

from storefront.errors import ValidationError
from storefront.logging import get_logger
from storefront.services.models import CatalogEntity
from storefront.services.normalize import normalize_cart_row
from .models import CartLine, LineKey, has_price_snapshot, line_from_payload
from .pricing import build_entity_line

logger = get_logger(__name__)


class CatalogLookup(Protocol):
    """Anything that can price and describe a composite key."""

    async def resolve_catalog_entity(
        self,
        product_id: str,
        variant_id: Optional[str] = None,
        combo_id: Optional[str] = None,
    ) -> Optional[CatalogEntity]: ...


async def _hydrate_row(payload: dict, catalog: CatalogLookup) -> Optional[CartLine]:
    row = normalize_cart_row(payload)
    # A variant wins over a combo when a row carries both
    if row["variant_id"]:
        key = LineKey(row["product_id"], variant_id=row["variant_id"])
    else:
        key = LineKey(row["product_id"], combo_id=row["combo_id"])
    entity = await catalog.resolve_catalog_entity(key.product_id, key.variant_id, key.combo_id)
    if entity is None:
        logger.warning(f"Dropping cart row for {key}: no longer in the catalog")
        return None
    return build_entity_line(key, row["quantity"], entity)


async def hydrate_lines(payloads: List[dict], catalog: Optional[CatalogLookup] = None) -> List[CartLine]:
    """Build lines from stored payloads, in stored order.

    Payloads with a price snapshot (guest carts) are rebuilt as-is. Id-only
    rows (durable carts) are priced through the catalog. Rows that cannot be
    read or resolved are dropped with a warning.
    """
    snapshots: dict[int, CartLine] = {}
    pending: dict[int, dict] = {}
    for index, payload in enumerate(payloads):
        if has_price_snapshot(payload):
            try:
                snapshots[index] = line_from_payload(payload)
            except (ValidationError, TypeError) as e:
                logger.warning(f"Dropping unreadable cart payload: {e}")
        elif catalog is None:
            logger.warning(f"Dropping cart row for {payload.get('product_id')}: no catalog to price it")
        else:
            pending[index] = payload

    if pending:
        results = await asyncio.gather(
            *(_hydrate_row(payload, catalog) for payload in pending.values()),
            return_exceptions=True,
        )
        for index, result in zip(pending.keys(), results):
            if isinstance(result, ValidationError):
                logger.warning(f"Dropping malformed cart row: {result}")
            elif isinstance(result, BaseException):
                raise result
            elif result is not None:
                snapshots[index] = result

    return [snapshots[i] for i in sorted(snapshots)]
