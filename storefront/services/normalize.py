"""
Normalization boundary for catalog and cart payloads.

Product data reaches the cart from direct table queries, joined relations
(`products(...)`, `product_variants(...)`) and legacy cached shapes. Every
ingress point passes through here so the cart core only ever sees the
canonical models from `storefront.services.models`.
"""
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from storefront.errors import ValidationError
from storefront.services.models import (
    Brand,
    ComboItem,
    Product,
    ProductCombo,
    ProductVariant,
)


def _require_mapping(raw: Any, kind: str) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"{kind} payload must be a mapping, got {type(raw).__name__}")
    return raw


def _image_list(*candidates: Any) -> tuple[str, ...]:
    """First non-empty image source, as a tuple of urls."""
    for candidate in candidates:
        if not candidate:
            continue
        if isinstance(candidate, str):
            return (candidate,)
        if isinstance(candidate, (list, tuple)):
            images = tuple(str(i) for i in candidate if i)
            if images:
                return images
    return ()


def _optional_id(value: Any) -> Optional[str]:
    # Supabase returns NULL columns as None; guest payloads may carry ""
    if value is None or value == "":
        return None
    return str(value)


def _normalize_brand(raw: dict) -> Optional[Brand]:
    brand = raw.get("brand") or raw.get("brands")
    if isinstance(brand, dict) and brand.get("name"):
        return Brand(id=_optional_id(brand.get("id")), name=str(brand["name"]))
    if isinstance(brand, str) and brand:
        return Brand(id=_optional_id(raw.get("brand_id")), name=brand)
    return None


def normalize_variant(raw: Any, product_id: Optional[str] = None) -> ProductVariant:
    """Build a canonical variant from a `product_variants` row."""
    if isinstance(raw, ProductVariant):
        return raw
    data = _require_mapping(raw, "Variant")
    owner = _optional_id(data.get("product_id")) or product_id
    if not owner:
        raise ValidationError("Variant payload has no product reference")
    try:
        return ProductVariant(
            id=str(data["id"]),
            product_id=owner,
            variant_name=data.get("variant_name") or data.get("name") or "",
            price=data.get("price"),
            is_active=data.get("is_active", True) is not False,
            is_default=bool(data.get("is_default", False)),
            images=_image_list(data.get("images"), data.get("image")),
        )
    except KeyError as e:
        raise ValidationError(f"Variant payload missing field {e}") from e
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid variant payload: {e}") from e


def normalize_product(raw: Any) -> Product:
    """Build a canonical product (with variants) from any known product shape."""
    if isinstance(raw, Product):
        return raw
    data = _require_mapping(raw, "Product")
    if not data.get("id"):
        raise ValidationError("Product payload has no id")
    product_id = str(data["id"])
    raw_variants = data.get("product_variants")
    if raw_variants is None:
        raw_variants = data.get("variants") or []
    if isinstance(raw_variants, dict):
        # One-to-one joins come back as a single object
        raw_variants = [raw_variants]
    try:
        return Product(
            id=product_id,
            name=data.get("name") or "",
            brand=_normalize_brand(data),
            price=data.get("price") if data.get("price") is not None else data.get("base_price"),
            is_active=data.get("is_active", True) is not False,
            variants=tuple(normalize_variant(v, product_id) for v in raw_variants),
            images=_image_list(data.get("gallery_images"), data.get("images"), data.get("image")),
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid product payload: {e}") from e


def _normalize_combo_item(raw: Any) -> ComboItem:
    if isinstance(raw, ComboItem):
        return raw
    data = _require_mapping(raw, "Combo item")
    variant = data.get("variant") or data.get("product_variants") or {}
    product_id = _optional_id(data.get("product_id")) or _optional_id(variant.get("product_id"))
    if not product_id:
        raise ValidationError("Combo item has no product reference")
    quantity = data.get("quantity", 1)
    if not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Combo item quantity must be a positive integer")
    return ComboItem(
        product_id=product_id,
        variant_id=_optional_id(data.get("variant_id")) or _optional_id(variant.get("id")),
        quantity=quantity,
    )


def normalize_combo(raw: Any) -> ProductCombo:
    """Build a canonical combo from a `product_combos` row (with `combo_items`)."""
    if isinstance(raw, ProductCombo):
        return raw
    data = _require_mapping(raw, "Combo")
    if not data.get("id"):
        raise ValidationError("Combo payload has no id")
    price = data.get("combo_price", data.get("price"))
    if price is None:
        raise ValidationError("Combo payload has no price")
    raw_items = sorted(
        data.get("combo_items") or data.get("items") or [],
        key=lambda item: (item.get("sort_order") or 0) if isinstance(item, dict) else 0,
    )
    images = _image_list(data.get("image"), data.get("combo_image"), data.get("gallery_images"))
    try:
        return ProductCombo(
            id=str(data["id"]),
            name=data.get("name") or "",
            combo_price=price,
            is_active=data.get("is_active", True) is not False,
            items=tuple(_normalize_combo_item(item) for item in raw_items),
            image=images[0] if images else "",
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid combo payload: {e}") from e


def normalize_cart_row(raw: Any) -> dict:
    """Reduce a durable `cart_items` row to the line payload shape."""
    data = _require_mapping(raw, "Cart row")
    product_id = _optional_id(data.get("product_id"))
    if not product_id:
        raise ValidationError("Cart row has no product_id")
    quantity = data.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(f"Cart row has invalid quantity: {quantity!r}")
    return {
        "product_id": product_id,
        "variant_id": _optional_id(data.get("variant_id")),
        "combo_id": _optional_id(data.get("combo_id")),
        "quantity": quantity,
    }
