"""Guest cart merging: command and handler.

Handles the one-time absorption of guest records collected before the
customer signed in. The handler returns the per-record outcomes so the
caller can retain whatever failed.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from shopping.cart.cart import ShoppingCart
from shopping.cart.items import cart_for_customer
from shopping.domain import shopping

logger = structlog.get_logger(__name__)


@shopping.command(part_of="ShoppingCart")
class MergeGuestCart:
    """Absorb guest cart records into a registered customer's cart."""

    customer_id = Identifier(required=True)
    source_session_id = String(max_length=255)
    strategy = String(max_length=20, default="merge")
    guest_items = Text(required=True)  # JSON: list of guest record dicts


@shopping.command_handler(part_of=ShoppingCart)
class MergeGuestCartHandler:
    @handle(MergeGuestCart)
    def merge_guest_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = cart_for_customer(command.customer_id)

        guest_items = json.loads(command.guest_items) if isinstance(command.guest_items, str) else command.guest_items

        results = cart.absorb_guest_items(
            guest_items=guest_items,
            source_session_id=command.source_session_id,
            strategy=command.strategy,
        )
        repo.add(cart)

        failed = [r for r in results if r["status"] == "failed"]
        if failed:
            logger.warning(
                "Guest cart merged with failures",
                customer_id=str(command.customer_id),
                failed_count=len(failed),
                submitted=len(results),
            )
        else:
            logger.info(
                "Guest cart merged",
                customer_id=str(command.customer_id),
                synced_count=len(results),
            )
        return results
