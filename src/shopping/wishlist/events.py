"""Domain events for the Wishlist aggregate."""

from protean.fields import Identifier, Integer, String

from shopping.domain import shopping


@shopping.event(part_of="Wishlist")
class WishlistItemAdded:
    __version__ = 1

    wishlist_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    item_kind = String(required=True)
    product_ref = String(required=True)
    variant_ref = String()


@shopping.event(part_of="Wishlist")
class WishlistItemRemoved:
    __version__ = 1

    wishlist_id = Identifier(required=True)
    item_kind = String(required=True)
    product_ref = String(required=True)
    variant_ref = String()


@shopping.event(part_of="Wishlist")
class WishlistCleared:
    __version__ = 1

    wishlist_id = Identifier(required=True)
    removed_count = Integer(required=True)


@shopping.event(part_of="Wishlist")
class GuestWishlistMerged:
    """Guest wishlist records were absorbed after sign-in."""

    __version__ = 1

    wishlist_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    source_session_id = String()
    strategy = String(required=True)
    synced_count = Integer(required=True)
    failed_count = Integer(required=True)
