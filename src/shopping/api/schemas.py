"""Pydantic request/response schemas for the Shopping API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands. Items are always addressed by the
(item_kind, product_ref, variant_ref) tuple, never by a guest-local id.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ItemKindLiteral = Literal["catalog-item", "prebuilt-item"]


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class SnapshotSchema(BaseModel):
    name: str | None = None
    thumbnail: str | None = None
    stock: int | None = None
    brand: str | None = None


class ItemIdentitySchema(BaseModel):
    item_kind: ItemKindLiteral
    product_ref: str = Field(min_length=1)
    variant_ref: str | None = None


# ---------------------------------------------------------------------------
# Cart Request Schemas
# ---------------------------------------------------------------------------
class AddCartItemRequest(ItemIdentitySchema):
    quantity: int = Field(ge=1, default=1)
    unit_price: float = Field(ge=0, default=0.0)
    snapshot: SnapshotSchema | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "item_kind": "catalog-item",
                    "product_ref": "P1",
                    "variant_ref": "V1",
                    "quantity": 2,
                    "unit_price": 500.0,
                    "snapshot": {"name": "Ryzen 7", "thumbnail": None, "stock": 12, "brand": "AMD"},
                }
            ]
        }
    }


class UpdateCartItemRequest(ItemIdentitySchema):
    quantity: int = Field(ge=0)


class GuestCartItemSchema(BaseModel):
    """One guest record submitted for merging.

    Deliberately permissive: malformed records are reported per item by the
    domain instead of rejecting the whole batch.
    """

    guest_item_id: str | None = None
    item_kind: str | None = None
    product_ref: str | None = None
    variant_ref: str | None = None
    quantity: int | None = None
    unit_price: float | None = None
    snapshot: SnapshotSchema | None = None


class SyncCartRequest(BaseModel):
    source_session_id: str | None = None
    strategy: str = "merge"
    items: list[GuestCartItemSchema] = Field(default_factory=list)


class GuestWishlistItemSchema(BaseModel):
    guest_item_id: str | None = None
    item_kind: str | None = None
    product_ref: str | None = None
    variant_ref: str | None = None
    snapshot: SnapshotSchema | None = None


class AddWishlistItemRequest(ItemIdentitySchema):
    snapshot: SnapshotSchema | None = None


class SyncWishlistRequest(BaseModel):
    source_session_id: str | None = None
    strategy: str = "merge"
    items: list[GuestWishlistItemSchema] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class CartItemResponse(BaseModel):
    item_id: str
    item_kind: str
    product_ref: str
    variant_ref: str | None = None
    quantity: int
    unit_price: float
    added_at: datetime | None = None
    snapshot: SnapshotSchema | None = None


class CartResponse(BaseModel):
    cart_id: str
    customer_id: str
    items: list[CartItemResponse]
    total_items: int
    total_price: float
    revision: int


class WishlistItemResponse(BaseModel):
    item_id: str
    item_kind: str
    product_ref: str
    variant_ref: str | None = None
    added_at: datetime | None = None
    snapshot: SnapshotSchema | None = None


class WishlistResponse(BaseModel):
    wishlist_id: str
    customer_id: str
    items: list[WishlistItemResponse]
    revision: int


class MergeResultSchema(BaseModel):
    item_kind: str | None = None
    product_ref: str | None = None
    variant_ref: str | None = None
    status: Literal["synced", "failed"]
    reason: str | None = None


class SyncCartResponse(BaseModel):
    results: list[MergeResultSchema]
    cart: CartResponse


class SyncWishlistResponse(BaseModel):
    results: list[MergeResultSchema]
    wishlist: WishlistResponse
