"""Catalog Models - canonical Pydantic shapes consumed by the cart."""
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator

from storefront.services.money import to_decimal as _to_decimal


class Brand(BaseModel):
    """Brand model."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: Optional[str] = None
    name: str


class ProductVariant(BaseModel):
    """Priced sub-item of a product (pack size, color, ...)."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    product_id: str
    variant_name: str = ""
    price: Decimal = Decimal("0")
    is_active: bool = True
    is_default: bool = False
    images: tuple[str, ...] = ()

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)

    @property
    def image(self) -> str:
        return self.images[0] if self.images else ""


class Product(BaseModel):
    """Product model with its variants."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str
    brand: Optional[Brand] = None
    price: Decimal = Decimal("0")  # legacy base price, used when there are no variants
    is_active: bool = True
    variants: tuple[ProductVariant, ...] = ()
    images: tuple[str, ...] = ()

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)

    def get_variant(self, variant_id: str) -> Optional[ProductVariant]:
        return next((v for v in self.variants if v.id == variant_id), None)

    @property
    def default_variant(self) -> Optional[ProductVariant]:
        """Designated default variant, ignoring inactive ones."""
        return next((v for v in self.variants if v.is_default and v.is_active), None)

    @property
    def image(self) -> str:
        variant = self.default_variant
        if variant and variant.image:
            return variant.image
        for v in self.variants:
            if v.image:
                return v.image
        return self.images[0] if self.images else ""


class ComboItem(BaseModel):
    """One constituent of a combo."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    product_id: str
    variant_id: Optional[str] = None
    quantity: int = 1


class ProductCombo(BaseModel):
    """Bundle of products/variants sold at one fixed price."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str
    combo_price: Decimal
    is_active: bool = True
    items: tuple[ComboItem, ...] = ()
    image: str = ""

    @field_validator("combo_price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)


class CatalogEntity(BaseModel):
    """Live catalog view of a cart line: what it costs and how to show it."""
    model_config = ConfigDict(frozen=True)

    unit_price: Decimal
    display_name: str
    image: str = ""
    variant_name: Optional[str] = None
    combo_name: Optional[str] = None

    @field_validator("unit_price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)
