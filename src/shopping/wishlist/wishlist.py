"""Wishlist aggregate: saved-for-later references, one wishlist per customer.

Presence is binary: a line either exists for an identity tuple or it does
not, so re-adding and re-merging are naturally idempotent.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text

from shopping.domain import shopping
from shopping.shared.items import (
    MergeStatus,
    MergeStrategy,
    dump_snapshot,
    ensure_valid_kind,
    is_valid_kind,
    merge_outcome,
    normalize_ref,
    parse_strategy,
)
from shopping.wishlist.events import (
    GuestWishlistMerged,
    WishlistCleared,
    WishlistItemAdded,
    WishlistItemRemoved,
)


@shopping.entity(part_of="Wishlist")
class WishlistItem:
    item_kind = String(required=True, max_length=20)
    product_ref = String(required=True, max_length=100)
    variant_ref = String(max_length=100)
    snapshot = Text()  # JSON: {name, thumbnail, stock, brand}
    added_at = DateTime()

    def matches(self, item_kind, product_ref, variant_ref):
        return (
            self.item_kind == item_kind
            and str(self.product_ref) == str(product_ref)
            and normalize_ref(self.variant_ref) == normalize_ref(variant_ref)
        )


@shopping.aggregate
class Wishlist:
    customer_id = Identifier(required=True, unique=True)
    items = HasMany(WishlistItem)
    revision = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, customer_id):
        now = datetime.now(UTC)
        return cls(customer_id=customer_id, revision=0, created_at=now, updated_at=now)

    def find_item(self, item_kind, product_ref, variant_ref=None):
        return next((i for i in self.items if i.matches(item_kind, product_ref, variant_ref)), None)

    def add_item(self, item_kind, product_ref, variant_ref=None, snapshot=None):
        """Save an item. An already-saved tuple only gets its snapshot refreshed."""
        ensure_valid_kind(item_kind)
        variant_ref = normalize_ref(variant_ref)

        existing = self.find_item(item_kind, product_ref, variant_ref)
        if existing:
            if snapshot:
                existing.snapshot = dump_snapshot(snapshot)
                self._touch()
            return

        now = datetime.now(UTC)
        self.add_items(
            WishlistItem(
                item_kind=item_kind,
                product_ref=product_ref,
                variant_ref=variant_ref,
                snapshot=dump_snapshot(snapshot),
                added_at=now,
            )
        )
        self._touch(now)

        self.raise_(
            WishlistItemAdded(
                wishlist_id=str(self.id),
                customer_id=str(self.customer_id),
                item_kind=item_kind,
                product_ref=product_ref,
                variant_ref=variant_ref,
            )
        )

    def remove_item(self, item_kind, product_ref, variant_ref=None):
        item = self.find_item(item_kind, product_ref, variant_ref)
        if item is None:
            raise ValidationError({"item": ["Item not found in wishlist"]})

        self.remove_items(item)
        self._touch()

        self.raise_(
            WishlistItemRemoved(
                wishlist_id=str(self.id),
                item_kind=item_kind,
                product_ref=product_ref,
                variant_ref=normalize_ref(variant_ref),
            )
        )

    def clear(self):
        removed_count = len(self.items)
        for item in list(self.items):
            self.remove_items(item)
        self._touch()

        self.raise_(WishlistCleared(wishlist_id=str(self.id), removed_count=removed_count))

    def absorb_guest_items(self, guest_items, source_session_id=None, strategy=MergeStrategy.MERGE.value):
        strategy = parse_strategy(strategy)
        if strategy == MergeStrategy.REPLACE:
            for item in list(self.items):
                self.remove_items(item)

        now = datetime.now(UTC)
        results = []
        for guest_item in guest_items:
            item_kind = guest_item.get("item_kind")
            product_ref = normalize_ref(guest_item.get("product_ref"))
            variant_ref = normalize_ref(guest_item.get("variant_ref"))
            if not is_valid_kind(item_kind) or not product_ref:
                results.append(merge_outcome(guest_item, MergeStatus.FAILED, "invalid"))
                continue

            if self.find_item(item_kind, product_ref, variant_ref) is None:
                self.add_items(
                    WishlistItem(
                        item_kind=item_kind,
                        product_ref=product_ref,
                        variant_ref=variant_ref,
                        snapshot=dump_snapshot(guest_item.get("snapshot")),
                        added_at=now,
                    )
                )
            results.append(merge_outcome(guest_item, MergeStatus.SYNCED))

        self._touch(now)

        synced_count = sum(1 for r in results if r["status"] == MergeStatus.SYNCED.value)
        self.raise_(
            GuestWishlistMerged(
                wishlist_id=str(self.id),
                customer_id=str(self.customer_id),
                source_session_id=source_session_id,
                strategy=strategy.value,
                synced_count=synced_count,
                failed_count=len(results) - synced_count,
            )
        )
        return results

    def _touch(self, now=None):
        self.updated_at = now or datetime.now(UTC)
        self.revision = (self.revision or 0) + 1
