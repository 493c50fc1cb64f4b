"""Domain events for the ShoppingCart aggregate."""

from protean.fields import Float, Identifier, Integer, String

from shopping.domain import shopping


@shopping.event(part_of="ShoppingCart")
class CartItemAdded:
    """A line was added to the cart, or an existing line's quantity was increased."""

    __version__ = 1

    cart_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    item_kind = String(required=True)
    product_ref = String(required=True)
    variant_ref = String()
    quantity = Integer(required=True)
    unit_price = Float(required=True)


@shopping.event(part_of="ShoppingCart")
class CartQuantityUpdated:
    """The quantity of a cart line was set to a new value."""

    __version__ = 1

    cart_id = Identifier(required=True)
    item_kind = String(required=True)
    product_ref = String(required=True)
    variant_ref = String()
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@shopping.event(part_of="ShoppingCart")
class CartItemRemoved:
    """A line was removed from the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    item_kind = String(required=True)
    product_ref = String(required=True)
    variant_ref = String()


@shopping.event(part_of="ShoppingCart")
class CartCleared:
    """Every line was removed from the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    removed_count = Integer(required=True)


@shopping.event(part_of="ShoppingCart")
class GuestCartMerged:
    """Guest records collected before sign-in were absorbed into the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    source_session_id = String()
    strategy = String(required=True)
    synced_count = Integer(required=True)
    failed_count = Integer(required=True)
