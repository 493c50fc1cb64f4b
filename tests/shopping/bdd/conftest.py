"""Shared BDD fixtures and step definitions for the Shopping domain."""

import pytest
from pytest_bdd import given, parsers, then
from shopping.cart.cart import ShoppingCart
from shopping.cart.events import (
    CartCleared,
    CartItemAdded,
    CartItemRemoved,
    CartQuantityUpdated,
    GuestCartMerged,
)
from shopping.wishlist.wishlist import Wishlist

# Map event name strings to classes for dynamic lookup in Then steps
_CART_EVENT_CLASSES = {
    "CartItemAdded": CartItemAdded,
    "CartQuantityUpdated": CartQuantityUpdated,
    "CartItemRemoved": CartItemRemoved,
    "CartCleared": CartCleared,
    "GuestCartMerged": GuestCartMerged,
}


@pytest.fixture()
def merge():
    """Container for the outcomes of the latest guest merge."""
    return {"results": []}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("an empty customer cart", target_fixture="cart")
def empty_cart():
    cart = ShoppingCart.create(customer_id="cust-001")
    cart._events.clear()
    return cart


@given("an empty customer wishlist", target_fixture="wishlist")
def empty_wishlist():
    wishlist = Wishlist.create(customer_id="cust-001")
    wishlist._events.clear()
    return wishlist


@given(parsers.cfparse('the cart holds product "{product_ref}" quantity {qty:d}'), target_fixture="cart")
def cart_holds_product(cart, product_ref, qty):
    cart.add_item("catalog-item", product_ref, None, qty, 10.0)
    cart._events.clear()
    return cart


@given(
    parsers.cfparse('the cart holds variant "{variant_ref}" of product "{product_ref}" quantity {qty:d}'),
    target_fixture="cart",
)
def cart_holds_variant(cart, variant_ref, product_ref, qty):
    cart.add_item("catalog-item", product_ref, variant_ref, qty, 10.0)
    cart._events.clear()
    return cart


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("a {event_type} cart event is raised"))
def cart_event_raised(cart, event_type):
    event_cls = _CART_EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in cart._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in cart._events]}"


@then("every submitted record is synced")
def every_record_synced(merge):
    assert merge["results"]
    assert all(result["status"] == "synced" for result in merge["results"])
