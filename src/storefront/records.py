"""Cart and wishlist record shapes shared by every layer of the client engine.

Records are immutable pydantic models. Attribute names are snake_case;
stored and transmitted documents use the camelCase aliases (``itemId``,
``itemKind``, ``productRef`` ...). Snapshot fields form a closed set and
unknown fields are dropped when a record is validated.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from storefront.keys import item_key, normalize_variant

MAX_LINE_QUANTITY = 100


class ItemKind(str, Enum):
    CATALOG_ITEM = "catalog-item"
    PREBUILT_ITEM = "prebuilt-item"


# Kinds written by older clients
LEGACY_KINDS = {
    "product": ItemKind.CATALOG_ITEM,
    "prebuilt-pc": ItemKind.PREBUILT_ITEM,
}


def new_item_id() -> str:
    return f"guest_{uuid4().hex}"


def utcnow() -> datetime:
    return datetime.now(UTC)


class ItemSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str | None = None
    thumbnail: str | None = None
    stock: int | None = None
    brand: str | None = None


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    item_id: str = Field(default_factory=new_item_id)
    item_kind: ItemKind
    product_ref: str = Field(min_length=1)
    variant_ref: str | None = None
    added_at: datetime = Field(default_factory=utcnow)
    snapshot: ItemSnapshot | None = None

    @field_validator("variant_ref", mode="before")
    @classmethod
    def _blank_variant_is_none(cls, value):
        return normalize_variant(value)

    @field_validator("added_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    @property
    def key(self) -> str:
        return item_key(self.item_kind, self.product_ref, self.variant_ref)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class CartRecord(_Record):
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)


class WishlistRecord(_Record):
    pass


def cart_totals(records) -> tuple[int, float]:
    """Total units and total price of a list of cart records."""
    return (
        sum(record.quantity for record in records),
        round(sum(record.line_total for record in records), 2),
    )
