"""Catalog Repository - product, variant and combo lookups for the cart."""
from typing import Optional

from storefront.cart.pricing import entity_for_combo, entity_for_product
from storefront.db import Tables
from storefront.errors import ERROR_COMBO_NOT_FOUND, ERROR_PRODUCT_NOT_FOUND
from storefront.logging import get_logger
from storefront.services.models import CatalogEntity, Product, ProductCombo
from storefront.services.normalize import normalize_combo, normalize_product
from .base import BaseRepository

logger = get_logger(__name__)

PRODUCT_COLUMNS = (
    "id, name, brand_id, price, is_active, gallery_images, "
    "brand:brands(id, name), "
    "product_variants(id, product_id, variant_name, price, is_active, is_default, images)"
)
COMBO_COLUMNS = (
    "id, name, combo_price, is_active, combo_image, gallery_images, "
    "combo_items(product_id, variant_id, quantity, sort_order)"
)


class CatalogRepository(BaseRepository):
    """Catalog reads. Every row leaves through the normalization boundary."""

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Get product with its variants."""
        result = await self.client.table(Tables.PRODUCTS).select(PRODUCT_COLUMNS).eq("id", product_id).limit(1).execute()
        if not result.data:
            logger.debug(f"{ERROR_PRODUCT_NOT_FOUND}: {product_id}")
            return None
        return normalize_product(result.data[0])

    async def get_combo(self, combo_id: str) -> Optional[ProductCombo]:
        """Get combo with its constituent items."""
        result = await self.client.table(Tables.PRODUCT_COMBOS).select(COMBO_COLUMNS).eq("id", combo_id).limit(1).execute()
        if not result.data:
            logger.debug(f"{ERROR_COMBO_NOT_FOUND}: {combo_id}")
            return None
        return normalize_combo(result.data[0])

    async def resolve_catalog_entity(
        self,
        product_id: str,
        variant_id: Optional[str] = None,
        combo_id: Optional[str] = None,
    ) -> Optional[CatalogEntity]:
        """Live price and display data for one composite key, or None if gone."""
        if combo_id and not variant_id:
            combo = await self.get_combo(combo_id)
            return entity_for_combo(combo) if combo else None

        product = await self.get_product(product_id)
        if product is None:
            return None
        return entity_for_product(product, variant_id)
