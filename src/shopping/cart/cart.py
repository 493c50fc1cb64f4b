"""Shopping Cart aggregate: the authoritative cart of a signed-in customer.

There is exactly one cart per customer. Lines are identified by the
(item kind, product reference, variant reference) tuple, never by a
client-side id. Guest records collected before sign-in are absorbed through
`absorb_guest_items`, which is idempotent per merge token: the cart remembers
how many units it already absorbed for each guest record and only adds the
difference on resubmission. Only the tokens of the most recently merged guest
sessions are kept.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from shopping.cart.events import (
    CartCleared,
    CartItemAdded,
    CartItemRemoved,
    CartQuantityUpdated,
    GuestCartMerged,
)
from shopping.domain import shopping
from shopping.shared.items import (
    MergeStatus,
    MergeStrategy,
    dump_snapshot,
    ensure_valid_kind,
    is_valid_kind,
    merge_outcome,
    merge_token,
    normalize_ref,
    parse_strategy,
    prune_merge_tokens,
)

MAX_LINE_QUANTITY = 100
# Guest sessions whose merge tokens a cart remembers
MAX_TRACKED_SESSIONS = 20


@shopping.entity(part_of="ShoppingCart")
class CartItem:
    item_kind = String(required=True, max_length=20)
    product_ref = String(required=True, max_length=100)
    variant_ref = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    snapshot = Text()  # JSON: {name, thumbnail, stock, brand}
    added_at = DateTime()

    def matches(self, item_kind, product_ref, variant_ref):
        return (
            self.item_kind == item_kind
            and str(self.product_ref) == str(product_ref)
            and normalize_ref(self.variant_ref) == normalize_ref(variant_ref)
        )


@shopping.aggregate
class ShoppingCart:
    customer_id = Identifier(required=True, unique=True)
    items = HasMany(CartItem)
    merged_tokens = Text()  # JSON: {merge_token: absorbed quantity}
    revision = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id):
        now = datetime.now(UTC)
        return cls(
            customer_id=customer_id,
            merged_tokens=json.dumps({}),
            revision=0,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def find_item(self, item_kind, product_ref, variant_ref=None):
        return next((i for i in self.items if i.matches(item_kind, product_ref, variant_ref)), None)

    @property
    def total_items(self):
        return sum(item.quantity for item in self.items)

    @property
    def total_price(self):
        return round(sum(item.quantity * item.unit_price for item in self.items), 2)

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, item_kind, product_ref, variant_ref, quantity, unit_price, snapshot=None):
        """Add a line, or increase the quantity of the line with the same identity."""
        ensure_valid_kind(item_kind)
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if unit_price is None or unit_price < 0:
            raise ValidationError({"unit_price": ["Price cannot be negative"]})

        variant_ref = normalize_ref(variant_ref)
        existing = self.find_item(item_kind, product_ref, variant_ref)
        new_quantity = quantity + (existing.quantity if existing else 0)
        if new_quantity > MAX_LINE_QUANTITY:
            raise ValidationError({"quantity": [f"Quantity cannot exceed {MAX_LINE_QUANTITY} per item"]})

        now = datetime.now(UTC)
        if existing:
            existing.quantity = new_quantity
            if unit_price:
                existing.unit_price = unit_price
            if snapshot:
                existing.snapshot = dump_snapshot(snapshot)
        else:
            self.add_items(
                CartItem(
                    item_kind=item_kind,
                    product_ref=product_ref,
                    variant_ref=variant_ref,
                    quantity=new_quantity,
                    unit_price=unit_price,
                    snapshot=dump_snapshot(snapshot),
                    added_at=now,
                )
            )
        self._touch(now)

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                customer_id=str(self.customer_id),
                item_kind=item_kind,
                product_ref=product_ref,
                variant_ref=variant_ref,
                quantity=quantity,
                unit_price=unit_price,
            )
        )

    def update_item_quantity(self, item_kind, product_ref, variant_ref, quantity):
        """Set a line's quantity. A quantity of zero removes the line."""
        if quantity is None or quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError({"quantity": [f"Quantity cannot exceed {MAX_LINE_QUANTITY} per item"]})

        item = self.find_item(item_kind, product_ref, variant_ref)
        if item is None:
            raise ValidationError({"item": ["Item not found in cart"]})

        if quantity == 0:
            self.remove_item(item_kind, product_ref, variant_ref)
            return

        previous_quantity = item.quantity
        item.quantity = quantity
        self._touch()

        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                item_kind=item_kind,
                product_ref=product_ref,
                variant_ref=normalize_ref(variant_ref),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )

    def remove_item(self, item_kind, product_ref, variant_ref=None):
        """Remove the line that exactly matches the identity tuple."""
        item = self.find_item(item_kind, product_ref, variant_ref)
        if item is None:
            raise ValidationError({"item": ["Item not found in cart"]})

        self.remove_items(item)
        self._touch()

        self.raise_(
            CartItemRemoved(
                cart_id=str(self.id),
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

        self.raise_(CartCleared(cart_id=str(self.id), removed_count=removed_count))

    # -------------------------------------------------------------------
    # Guest merge
    # -------------------------------------------------------------------
    def absorb_guest_items(self, guest_items, source_session_id=None, strategy=MergeStrategy.MERGE.value):
        """Absorb guest records and report a per-record outcome.

        Args:
            guest_items: List of dicts with item_kind, product_ref, variant_ref,
                quantity, unit_price and optionally guest_item_id and snapshot.
            source_session_id: The guest session the records were collected in.
            strategy: "merge" sums into existing lines, "replace" empties the
                cart first.

        Returns:
            One outcome dict per guest record, in submission order.
        """
        strategy = parse_strategy(strategy)
        tokens = json.loads(self.merged_tokens) if self.merged_tokens else {}

        if strategy == MergeStrategy.REPLACE:
            for item in list(self.items):
                self.remove_items(item)
            tokens = {}

        now = datetime.now(UTC)
        results = [self._absorb_one(guest_item, source_session_id, tokens, now) for guest_item in guest_items]

        self.merged_tokens = json.dumps(prune_merge_tokens(tokens, source_session_id, MAX_TRACKED_SESSIONS))
        self._touch(now)

        synced_count = sum(1 for r in results if r["status"] == MergeStatus.SYNCED.value)
        self.raise_(
            GuestCartMerged(
                cart_id=str(self.id),
                customer_id=str(self.customer_id),
                source_session_id=source_session_id,
                strategy=strategy.value,
                synced_count=synced_count,
                failed_count=len(results) - synced_count,
            )
        )
        return results

    def _absorb_one(self, guest_item, source_session_id, tokens, now):
        item_kind = guest_item.get("item_kind")
        product_ref = normalize_ref(guest_item.get("product_ref"))
        variant_ref = normalize_ref(guest_item.get("variant_ref"))
        quantity = guest_item.get("quantity")
        unit_price = guest_item.get("unit_price") or 0

        if (
            not is_valid_kind(item_kind)
            or not product_ref
            or not isinstance(quantity, int)
            or isinstance(quantity, bool)
            or quantity < 1
            or not isinstance(unit_price, int | float)
            or unit_price < 0
        ):
            return merge_outcome(guest_item, MergeStatus.FAILED, "invalid")

        token = merge_token(source_session_id, guest_item)
        delta = quantity - tokens.get(token, 0)
        if delta <= 0:
            # Already absorbed in an earlier attempt
            return merge_outcome(guest_item, MergeStatus.SYNCED)

        existing = self.find_item(item_kind, product_ref, variant_ref)
        new_quantity = delta + (existing.quantity if existing else 0)
        if new_quantity > MAX_LINE_QUANTITY:
            return merge_outcome(guest_item, MergeStatus.FAILED, "quantity_limit")

        if existing:
            existing.quantity = new_quantity
        else:
            self.add_items(
                CartItem(
                    item_kind=item_kind,
                    product_ref=product_ref,
                    variant_ref=variant_ref,
                    quantity=new_quantity,
                    unit_price=unit_price,
                    snapshot=dump_snapshot(guest_item.get("snapshot")),
                    added_at=now,
                )
            )
        tokens[token] = quantity
        return merge_outcome(guest_item, MergeStatus.SYNCED)

    def _touch(self, now=None):
        self.updated_at = now or datetime.now(UTC)
        self.revision = (self.revision or 0) + 1
