"""Cart line models: a tagged union over base, variant and combo lines."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar, NamedTuple, Optional

from storefront.errors import ERROR_INVALID_QUANTITY, ValidationError
from storefront.logging import get_logger
from storefront.services.money import to_decimal

logger = get_logger(__name__)


class LineKey(NamedTuple):
    """Composite identity of a cart line."""
    product_id: str
    variant_id: Optional[str] = None
    combo_id: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def check_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(f"{ERROR_INVALID_QUANTITY}, got {quantity!r}")
    return quantity


@dataclass(frozen=True, kw_only=True)
class CartLine:
    """Fields shared by every line kind. Not instantiated directly."""
    kind: ClassVar[str] = ""

    product_id: str
    quantity: int
    name: str = ""
    image: str = ""
    added_at: str = field(default_factory=_now)

    def __post_init__(self):
        if type(self) is CartLine:
            raise TypeError("CartLine is abstract, use BaseLine, VariantLine or ComboLine")
        if not self.product_id:
            raise ValidationError("product_id must be a non-empty string")
        check_quantity(self.quantity)

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id)

    def with_quantity(self, quantity: int) -> "CartLine":
        """Copy of this line with another quantity (snapshot kept)."""
        return replace(self, quantity=quantity)

    def to_payload(self) -> dict:
        """Serialize for storage, price snapshot included."""
        return {
            "kind": self.kind,
            "product_id": self.product_id,
            "variant_id": None,
            "combo_id": None,
            "quantity": self.quantity,
            "name": self.name,
            "image": self.image,
            "added_at": self.added_at,
        }


@dataclass(frozen=True, kw_only=True)
class BaseLine(CartLine):
    """A product added without a variant or combo."""
    kind: ClassVar[str] = "product"

    product_price: Decimal = Decimal("0")

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "product_price", to_decimal(self.product_price))

    def to_payload(self) -> dict:
        return {**super().to_payload(), "product_price": str(self.product_price)}


@dataclass(frozen=True, kw_only=True)
class VariantLine(CartLine):
    """A specific variant of a product."""
    kind: ClassVar[str] = "variant"

    variant_id: str
    variant_name: str = ""
    variant_price: Decimal = Decimal("0")

    def __post_init__(self):
        super().__post_init__()
        if not self.variant_id:
            raise ValidationError("variant_id must be a non-empty string")
        object.__setattr__(self, "variant_price", to_decimal(self.variant_price))

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, variant_id=self.variant_id)

    def to_payload(self) -> dict:
        return {
            **super().to_payload(),
            "variant_id": self.variant_id,
            "variant_name": self.variant_name,
            "variant_price": str(self.variant_price),
        }


@dataclass(frozen=True, kw_only=True)
class ComboLine(CartLine):
    """A combo bundle sold at its fixed price."""
    kind: ClassVar[str] = "combo"

    combo_id: str
    combo_name: str = ""
    combo_price: Decimal = Decimal("0")

    def __post_init__(self):
        super().__post_init__()
        if not self.combo_id:
            raise ValidationError("combo_id must be a non-empty string")
        object.__setattr__(self, "combo_price", to_decimal(self.combo_price))

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, combo_id=self.combo_id)

    def to_payload(self) -> dict:
        return {
            **super().to_payload(),
            "combo_id": self.combo_id,
            "combo_name": self.combo_name,
            "combo_price": str(self.combo_price),
        }


def has_price_snapshot(payload: dict) -> bool:
    """Whether a stored payload carries its own price (guest carts do, durable rows don't)."""
    return any(payload.get(f) is not None for f in ("variant_price", "combo_price", "product_price"))


def line_from_payload(payload: dict) -> CartLine:
    """Rebuild a line from its stored payload.

    A payload carrying both a variant and a combo id is read as a variant
    line; the combo reference is dropped with a warning.
    """
    try:
        common = {
            "product_id": payload["product_id"],
            "quantity": payload["quantity"],
            "name": payload.get("name") or "",
            "image": payload.get("image") or "",
        }
    except KeyError as e:
        raise ValidationError(f"Cart payload missing field {e}") from e
    if payload.get("added_at"):
        common["added_at"] = payload["added_at"]

    variant_id = payload.get("variant_id")
    combo_id = payload.get("combo_id")
    if variant_id and combo_id:
        logger.warning(
            f"Cart payload for product {payload['product_id']} has both variant {variant_id} "
            f"and combo {combo_id}; keeping the variant"
        )
    if variant_id:
        return VariantLine(
            **common,
            variant_id=variant_id,
            variant_name=payload.get("variant_name") or "",
            variant_price=payload.get("variant_price"),
        )
    if combo_id:
        return ComboLine(
            **common,
            combo_id=combo_id,
            combo_name=payload.get("combo_name") or "",
            combo_price=payload.get("combo_price"),
        )
    return BaseLine(**common, product_price=payload.get("product_price"))


@dataclass(frozen=True)
class CartOwner:
    """Whose cart this is: an anonymous session token or a user id, never both."""
    kind: str
    id: str

    ANONYMOUS: ClassVar[str] = "anonymous"
    USER: ClassVar[str] = "user"

    def __post_init__(self):
        if self.kind not in (self.ANONYMOUS, self.USER):
            raise ValidationError(f"Unknown cart owner kind: {self.kind!r}")
        if not self.id:
            raise ValidationError("Cart owner id must be a non-empty string")

    @classmethod
    def anonymous(cls, session_token: str) -> "CartOwner":
        return cls(cls.ANONYMOUS, session_token)

    @classmethod
    def user(cls, user_id: str) -> "CartOwner":
        return cls(cls.USER, user_id)

    @property
    def is_authenticated(self) -> bool:
        return self.kind == self.USER

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.id}"

