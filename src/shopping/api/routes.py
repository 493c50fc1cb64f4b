"""FastAPI routes for the Shopping domain: the signed-in customer's cart and wishlist.

Every mutating endpoint echoes the full authoritative collection, including
its ``revision``, so clients reconcile from the response.
"""

import json

from fastapi import APIRouter, Depends
from protean.utils.globals import current_domain

from shopping.api.auth import authenticated_customer
from shopping.api.schemas import (
    AddCartItemRequest,
    AddWishlistItemRequest,
    CartItemResponse,
    CartResponse,
    ItemIdentitySchema,
    MergeResultSchema,
    SyncCartRequest,
    SyncCartResponse,
    SyncWishlistRequest,
    SyncWishlistResponse,
    UpdateCartItemRequest,
    WishlistItemResponse,
    WishlistResponse,
)
from shopping.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartQuantity, cart_for_customer
from shopping.cart.merging import MergeGuestCart
from shopping.shared.items import load_snapshot
from shopping.wishlist.items import (
    AddToWishlist,
    ClearWishlist,
    MergeGuestWishlist,
    RemoveFromWishlist,
    wishlist_for_customer,
)


def _snapshot_json(snapshot) -> str | None:
    return json.dumps(snapshot.model_dump()) if snapshot is not None else None


def _cart_response(cart) -> CartResponse:
    return CartResponse(
        cart_id=str(cart.id),
        customer_id=str(cart.customer_id),
        items=[
            CartItemResponse(
                item_id=str(item.id),
                item_kind=item.item_kind,
                product_ref=item.product_ref,
                variant_ref=item.variant_ref,
                quantity=item.quantity,
                unit_price=item.unit_price,
                added_at=item.added_at,
                snapshot=load_snapshot(item.snapshot),
            )
            for item in cart.items
        ],
        total_items=cart.total_items,
        total_price=cart.total_price,
        revision=cart.revision or 0,
    )


def _wishlist_response(wishlist) -> WishlistResponse:
    return WishlistResponse(
        wishlist_id=str(wishlist.id),
        customer_id=str(wishlist.customer_id),
        items=[
            WishlistItemResponse(
                item_id=str(item.id),
                item_kind=item.item_kind,
                product_ref=item.product_ref,
                variant_ref=item.variant_ref,
                added_at=item.added_at,
                snapshot=load_snapshot(item.snapshot),
            )
            for item in wishlist.items
        ],
        revision=wishlist.revision or 0,
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
async def get_cart(customer_id: str = Depends(authenticated_customer)) -> CartResponse:
    return _cart_response(cart_for_customer(customer_id))


@cart_router.post("", status_code=201, response_model=CartResponse)
async def add_cart_item(
    body: AddCartItemRequest,
    customer_id: str = Depends(authenticated_customer),
) -> CartResponse:
    command = AddToCart(
        customer_id=customer_id,
        item_kind=body.item_kind,
        product_ref=body.product_ref,
        variant_ref=body.variant_ref,
        quantity=body.quantity,
        unit_price=body.unit_price,
        snapshot=_snapshot_json(body.snapshot),
    )
    current_domain.process(command, asynchronous=False)
    return _cart_response(cart_for_customer(customer_id))


@cart_router.put("", response_model=CartResponse)
async def update_cart_item(
    body: UpdateCartItemRequest,
    customer_id: str = Depends(authenticated_customer),
) -> CartResponse:
    command = UpdateCartQuantity(
        customer_id=customer_id,
        item_kind=body.item_kind,
        product_ref=body.product_ref,
        variant_ref=body.variant_ref,
        quantity=body.quantity,
    )
    current_domain.process(command, asynchronous=False)
    return _cart_response(cart_for_customer(customer_id))


@cart_router.delete("", response_model=CartResponse)
async def remove_cart_item(
    body: ItemIdentitySchema,
    customer_id: str = Depends(authenticated_customer),
) -> CartResponse:
    command = RemoveFromCart(
        customer_id=customer_id,
        item_kind=body.item_kind,
        product_ref=body.product_ref,
        variant_ref=body.variant_ref,
    )
    current_domain.process(command, asynchronous=False)
    return _cart_response(cart_for_customer(customer_id))


@cart_router.delete("/clear", response_model=CartResponse)
async def clear_cart(customer_id: str = Depends(authenticated_customer)) -> CartResponse:
    current_domain.process(ClearCart(customer_id=customer_id), asynchronous=False)
    return _cart_response(cart_for_customer(customer_id))


@cart_router.post("/sync", response_model=SyncCartResponse)
async def sync_cart(
    body: SyncCartRequest,
    customer_id: str = Depends(authenticated_customer),
) -> SyncCartResponse:
    """Absorb guest cart records; reports a per-record outcome."""
    command = MergeGuestCart(
        customer_id=customer_id,
        source_session_id=body.source_session_id,
        strategy=body.strategy,
        guest_items=json.dumps([item.model_dump() for item in body.items]),
    )
    results = current_domain.process(command, asynchronous=False)
    return SyncCartResponse(
        results=[MergeResultSchema(**result) for result in results],
        cart=_cart_response(cart_for_customer(customer_id)),
    )


# ---------------------------------------------------------------------------
# Wishlist Router
# ---------------------------------------------------------------------------
wishlist_router = APIRouter(prefix="/wishlist", tags=["wishlist"])


@wishlist_router.get("", response_model=WishlistResponse)
async def get_wishlist(customer_id: str = Depends(authenticated_customer)) -> WishlistResponse:
    return _wishlist_response(wishlist_for_customer(customer_id))


@wishlist_router.post("", status_code=201, response_model=WishlistResponse)
async def add_wishlist_item(
    body: AddWishlistItemRequest,
    customer_id: str = Depends(authenticated_customer),
) -> WishlistResponse:
    command = AddToWishlist(
        customer_id=customer_id,
        item_kind=body.item_kind,
        product_ref=body.product_ref,
        variant_ref=body.variant_ref,
        snapshot=_snapshot_json(body.snapshot),
    )
    current_domain.process(command, asynchronous=False)
    return _wishlist_response(wishlist_for_customer(customer_id))


@wishlist_router.delete("", response_model=WishlistResponse)
async def remove_wishlist_item(
    body: ItemIdentitySchema,
    customer_id: str = Depends(authenticated_customer),
) -> WishlistResponse:
    command = RemoveFromWishlist(
        customer_id=customer_id,
        item_kind=body.item_kind,
        product_ref=body.product_ref,
        variant_ref=body.variant_ref,
    )
    current_domain.process(command, asynchronous=False)
    return _wishlist_response(wishlist_for_customer(customer_id))


@wishlist_router.delete("/clear", response_model=WishlistResponse)
async def clear_wishlist(customer_id: str = Depends(authenticated_customer)) -> WishlistResponse:
    current_domain.process(ClearWishlist(customer_id=customer_id), asynchronous=False)
    return _wishlist_response(wishlist_for_customer(customer_id))


@wishlist_router.post("/sync", response_model=SyncWishlistResponse)
async def sync_wishlist(
    body: SyncWishlistRequest,
    customer_id: str = Depends(authenticated_customer),
) -> SyncWishlistResponse:
    command = MergeGuestWishlist(
        customer_id=customer_id,
        source_session_id=body.source_session_id,
        strategy=body.strategy,
        guest_items=json.dumps([item.model_dump() for item in body.items]),
    )
    results = current_domain.process(command, asynchronous=False)
    return SyncWishlistResponse(
        results=[MergeResultSchema(**result) for result in results],
        wishlist=_wishlist_response(wishlist_for_customer(customer_id)),
    )
