"""
Price resolution across the variant / combo / product hierarchy.

A line's price is captured once, when the line is built, from the tier that
applies to it: variant price for variant lines, the combo's fixed price for
combo lines, otherwise the product price. Later catalog changes do not touch
lines already in a cart.
"""
from decimal import Decimal
from typing import Iterable, Optional

from storefront.errors import (
    ERROR_VARIANT_INACTIVE,
    ERROR_VARIANT_NOT_FOUND,
    ValidationError,
)
from storefront.services.models import CatalogEntity, Product, ProductCombo
from storefront.services.money import multiply, round_money
from .models import BaseLine, CartLine, ComboLine, LineKey, VariantLine, check_quantity


def effective_price(line: CartLine) -> Decimal:
    """Unit price of a line from its own snapshot."""
    if isinstance(line, VariantLine):
        return line.variant_price
    if isinstance(line, ComboLine):
        return line.combo_price
    if isinstance(line, BaseLine):
        return line.product_price
    raise TypeError(f"Unknown cart line type: {type(line).__name__}")


def line_total(line: CartLine) -> Decimal:
    """Price for all units of a line."""
    return round_money(multiply(effective_price(line), line.quantity))


def cart_totals(lines: Iterable[CartLine]) -> tuple[int, Decimal]:
    """(total_items, total_price) over a list of lines."""
    total_items = 0
    total_price = Decimal("0")
    for line in lines:
        total_items += line.quantity
        total_price += multiply(effective_price(line), line.quantity)
    return total_items, round_money(total_price)


def resolve_product_price(product: Product) -> Decimal:
    """Display price of a product when no variant was picked.

    Default variant, then the first active variant, then the first variant.
    Products without variants fall back to their legacy price (zero if unset).
    """
    if not product.variants:
        return product.price
    default = product.default_variant
    if default is not None:
        return default.price
    active = [v for v in product.variants if v.is_active]
    if active:
        return active[0].price
    return product.variants[0].price


def _require(value, model, kind: str):
    # Raw dicts must go through storefront.services.normalize first
    if not isinstance(value, model):
        raise ValidationError(f"Expected a normalized {kind}, got {type(value).__name__}")
    return value


def build_product_line(product: Product, quantity: int = 1, variant_id: Optional[str] = None) -> CartLine:
    """Build a line for a product, snapshotting its price now.

    Without an explicit variant the product's default variant is used when
    it has one; otherwise the line is a plain product line priced by
    `resolve_product_price`.
    """
    _require(product, Product, "product")
    check_quantity(quantity)

    if variant_id is None and product.default_variant is not None:
        variant_id = product.default_variant.id

    if variant_id is None:
        return BaseLine(
            product_id=product.id,
            quantity=quantity,
            name=product.name,
            image=product.image,
            product_price=resolve_product_price(product),
        )

    variant = product.get_variant(variant_id)
    if variant is None:
        raise ValidationError(f"{ERROR_VARIANT_NOT_FOUND}: {variant_id}")
    if not variant.is_active:
        raise ValidationError(f"{ERROR_VARIANT_INACTIVE}: {variant_id}")
    return VariantLine(
        product_id=product.id,
        quantity=quantity,
        name=product.name,
        image=variant.image or product.image,
        variant_id=variant.id,
        variant_name=variant.variant_name,
        variant_price=variant.price,
    )


def combo_product_id(combo: ProductCombo) -> str:
    """Product reference stored on a combo line: its first constituent."""
    return combo.items[0].product_id if combo.items else combo.id


def build_combo_line(combo: ProductCombo, quantity: int = 1) -> ComboLine:
    """Build a line for a combo at its fixed bundle price.

    Constituent prices are irrelevant here.
    """
    _require(combo, ProductCombo, "combo")
    check_quantity(quantity)
    return ComboLine(
        product_id=combo_product_id(combo),
        quantity=quantity,
        name=combo.name,
        image=combo.image,
        combo_id=combo.id,
        combo_name=combo.name,
        combo_price=combo.combo_price,
    )


def build_entity_line(key: LineKey, quantity: int, entity: CatalogEntity) -> CartLine:
    """Build a line for a stored key from its live catalog entity."""
    common = {
        "product_id": key.product_id,
        "quantity": quantity,
        "name": entity.display_name,
        "image": entity.image,
    }
    if key.variant_id:
        return VariantLine(
            **common,
            variant_id=key.variant_id,
            variant_name=entity.variant_name or "",
            variant_price=entity.unit_price,
        )
    if key.combo_id:
        return ComboLine(
            **common,
            combo_id=key.combo_id,
            combo_name=entity.combo_name or entity.display_name,
            combo_price=entity.unit_price,
        )
    return BaseLine(**common, product_price=entity.unit_price)


def entity_for_product(product: Product, variant_id: Optional[str] = None) -> Optional[CatalogEntity]:
    """Live catalog entity for a product (or one of its variants)."""
    if variant_id:
        variant = product.get_variant(variant_id)
        if variant is None:
            return None
        return CatalogEntity(
            unit_price=variant.price,
            display_name=product.name,
            image=variant.image or product.image,
            variant_name=variant.variant_name,
        )
    return CatalogEntity(
        unit_price=resolve_product_price(product),
        display_name=product.name,
        image=product.image,
    )


def entity_for_combo(combo: ProductCombo) -> CatalogEntity:
    """Live catalog entity for a combo."""
    return CatalogEntity(
        unit_price=combo.combo_price,
        display_name=combo.name,
        image=combo.image,
        combo_name=combo.name,
    )
