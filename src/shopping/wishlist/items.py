"""Wishlist management: commands and handler."""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from shopping.domain import shopping
from shopping.wishlist.wishlist import Wishlist


def wishlist_for_customer(customer_id) -> Wishlist:
    """Return the customer's wishlist, creating it on first use."""
    repo = current_domain.repository_for(Wishlist)
    found = repo._dao.query.filter(customer_id=customer_id).all().items
    if found:
        return repo.get(str(found[0].id))

    return Wishlist.create(customer_id=customer_id)


@shopping.command(part_of="Wishlist")
class AddToWishlist:
    customer_id = Identifier(required=True)
    item_kind = String(required=True, max_length=20)
    product_ref = String(required=True, max_length=100)
    variant_ref = String(max_length=100)
    snapshot = Text()


@shopping.command(part_of="Wishlist")
class RemoveFromWishlist:
    customer_id = Identifier(required=True)
    item_kind = String(required=True, max_length=20)
    product_ref = String(required=True, max_length=100)
    variant_ref = String(max_length=100)


@shopping.command(part_of="Wishlist")
class ClearWishlist:
    customer_id = Identifier(required=True)


@shopping.command(part_of="Wishlist")
class MergeGuestWishlist:
    customer_id = Identifier(required=True)
    source_session_id = String(max_length=255)
    strategy = String(max_length=20, default="merge")
    guest_items = Text(required=True)  # JSON: list of guest record dicts


@shopping.command_handler(part_of=Wishlist)
class ManageWishlistHandler:
    @handle(AddToWishlist)
    def add_to_wishlist(self, command):
        repo = current_domain.repository_for(Wishlist)
        wishlist = wishlist_for_customer(command.customer_id)
        wishlist.add_item(
            item_kind=command.item_kind,
            product_ref=command.product_ref,
            variant_ref=command.variant_ref,
            snapshot=command.snapshot,
        )
        repo.add(wishlist)
        return str(wishlist.id)

    @handle(RemoveFromWishlist)
    def remove_from_wishlist(self, command):
        repo = current_domain.repository_for(Wishlist)
        wishlist = wishlist_for_customer(command.customer_id)
        wishlist.remove_item(
            item_kind=command.item_kind,
            product_ref=command.product_ref,
            variant_ref=command.variant_ref,
        )
        repo.add(wishlist)
        return str(wishlist.id)

    @handle(ClearWishlist)
    def clear_wishlist(self, command):
        repo = current_domain.repository_for(Wishlist)
        wishlist = wishlist_for_customer(command.customer_id)
        wishlist.clear()
        repo.add(wishlist)
        return str(wishlist.id)

    @handle(MergeGuestWishlist)
    def merge_guest_wishlist(self, command):
        repo = current_domain.repository_for(Wishlist)
        wishlist = wishlist_for_customer(command.customer_id)

        guest_items = json.loads(command.guest_items) if isinstance(command.guest_items, str) else command.guest_items

        results = wishlist.absorb_guest_items(
            guest_items=guest_items,
            source_session_id=command.source_session_id,
            strategy=command.strategy,
        )
        repo.add(wishlist)
        return results
