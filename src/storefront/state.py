"""Reactive state stores: the in-memory cart and wishlist consumed by the UI.

Every mutating command runs in three phases:

1. Optimistic: the change is queued as a pending mutation and is immediately
   visible in ``state.items``.
2. Commit: the change goes to the remote gateway (authenticated mode) or the
   local record store (guest mode). Commits for one item key run strictly in
   issue order; different keys run concurrently. ``clear`` waits for the
   commands issued before it on every key and holds back later ones.
3. Reconcile: on success the authoritative result (server echo or re-read
   local records) becomes the new base and the pending mutation is dropped;
   on failure the pending mutation is dropped, which rolls it back, and
   ``last_error`` is set.

Visible items are always the confirmed base with the still-pending mutations
replayed over it, so an optimistic change is either confirmed or reverted.
Public commands never raise; they return ``True``/``False`` and leave the
store in a defined status.
"""

import asyncio
from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum

import structlog
from pydantic import ValidationError

from storefront.catalog import CatalogLookup, build_snapshot
from storefront.exceptions import InvalidItemError, QuantityLimitError, StorefrontError
from storefront.gateway.port import CartGateway, RemoteSnapshot, WishlistGateway
from storefront.keys import item_key
from storefront.local_store import LocalRecordStore
from storefront.pricing import resolve_unit_price
from storefront.records import MAX_LINE_QUANTITY, CartRecord, ItemKind, WishlistRecord, cart_totals

logger = structlog.get_logger(__name__)

CLEAR_KEY = "*"


class SessionMode(str, Enum):
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class StoreStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    ERROR = "error"


@dataclass(frozen=True)
class StoreState:
    items: tuple = ()
    mode: SessionMode = SessionMode.GUEST
    status: StoreStatus = StoreStatus.IDLE
    last_error: str | None = None
    revision: int | None = None

    def find(self, key: str):
        return next((item for item in self.items if item.key == key), None)

    def __contains__(self, key: str) -> bool:
        return self.find(key) is not None


@dataclass(eq=False)
class _Mutation:
    key: str
    apply: Callable[[list], list]


class KeyedSerializer:
    """Runs critical sections one at a time per key, in arrival order.

    A section held on ``exclusive_key`` is a barrier across all keys: it
    starts once every section that arrived before it has finished, and
    sections that arrive after it wait until it is done.
    """

    def __init__(self, exclusive_key: str = CLEAR_KEY) -> None:
        self.exclusive_key = exclusive_key
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}
        self._active: set[asyncio.Future] = set()
        self._barrier: asyncio.Future | None = None

    @asynccontextmanager
    async def hold(self, key: str):
        done = asyncio.get_running_loop().create_future()
        waits = {self._barrier} if self._barrier is not None else set()
        if key == self.exclusive_key:
            waits |= self._active
            self._barrier = done
        else:
            self._active.add(done)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                if waits:
                    # asyncio.wait leaves the awaited futures alone on cancellation
                    await asyncio.wait(waits)
                yield
        finally:
            self._active.discard(done)
            if self._barrier is done:
                self._barrier = None
            if not done.done():
                done.set_result(None)
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ReactiveStore:
    name = "store"

    def __init__(
        self,
        local: LocalRecordStore,
        gateway: CartGateway | WishlistGateway,
        *,
        catalog: CatalogLookup | None = None,
        mode: SessionMode = SessionMode.GUEST,
    ) -> None:
        self.local = local
        self.gateway = gateway
        self.catalog = catalog
        self.mode = mode
        self._base: list = local.load() if mode is SessionMode.GUEST else []
        self._revision: int | None = None
        self._pending: list[_Mutation] = []
        self._status = StoreStatus.IDLE
        self._last_error: str | None = None
        # Bumped on every mode switch; results from an older epoch are dropped
        self._epoch = 0
        self._serializer = KeyedSerializer()
        self._listeners: list[Callable[[StoreState], None]] = []

    # -------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------
    @property
    def state(self) -> StoreState:
        items = list(self._base)
        for mutation in self._pending:
            items = mutation.apply(items)
        return StoreState(
            items=tuple(items),
            mode=self.mode,
            status=self._status,
            last_error=self._last_error,
            revision=self._revision,
        )

    def subscribe(self, listener: Callable[[StoreState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener failed", store=self.name)

    # -------------------------------------------------------------------
    # Mode and refresh
    # -------------------------------------------------------------------
    def set_mode(self, mode: SessionMode) -> None:
        """Switch modes. In-flight commands issued under the old mode are discarded."""
        if mode is self.mode:
            return
        self.mode = mode
        self._epoch += 1
        self._pending.clear()
        self._revision = None
        self._base = self.local.load() if mode is SessionMode.GUEST else []
        self._status = StoreStatus.IDLE
        self._last_error = None
        logger.info("Store mode changed", store=self.name, mode=mode.value)
        self._notify()

    async def refresh(self) -> bool:
        """Replace the base with the authoritative set for the current mode."""
        epoch = self._epoch
        try:
            if self.mode is SessionMode.GUEST:
                result = self.local.load()
            else:
                result = await self.gateway.fetch()
        except StorefrontError as exc:
            if epoch == self._epoch:
                self._fail(exc, "refresh")
            return False
        except Exception as exc:
            logger.exception("Store refresh crashed", store=self.name)
            if epoch == self._epoch:
                self._fail(exc, "refresh")
            return False
        if epoch != self._epoch:
            return False
        self._reconcile(result)
        self._settle()
        return True

    def _reconcile(self, result) -> None:
        if isinstance(result, RemoteSnapshot):
            if self._revision is not None and result.revision < self._revision:
                logger.debug(
                    "Ignored stale echo",
                    store=self.name,
                    revision=result.revision,
                    current=self._revision,
                )
                return
            self._base = list(result.items)
            self._revision = result.revision
        else:
            self._base = list(result)

    # -------------------------------------------------------------------
    # Command plumbing
    # -------------------------------------------------------------------
    def _settle(self) -> None:
        self._status = StoreStatus.PENDING if self._pending else StoreStatus.IDLE
        self._last_error = None
        self._notify()

    def _fail(self, exc: Exception, action: str, key: str | None = None) -> bool:
        self._status = StoreStatus.ERROR
        self._last_error = str(exc)
        logger.warning(
            "Store command failed",
            store=self.name,
            action=action,
            key=key,
            reason=getattr(exc, "reason", "invalid"),
            error=str(exc),
        )
        self._notify()
        return False

    async def _command(self, action: str, key: str, apply, commit) -> bool:
        mutation = _Mutation(key=key, apply=apply)
        epoch = self._epoch
        self._pending.append(mutation)
        self._status = StoreStatus.PENDING
        self._notify()

        error: Exception | None = None
        try:
            async with self._serializer.hold(key):
                if epoch != self._epoch:
                    return False
                result = await commit()
        except (StorefrontError, ValidationError) as exc:
            error = exc
        except Exception as exc:
            logger.exception("Store command crashed", store=self.name, action=action, key=key)
            error = exc
        finally:
            if mutation in self._pending:
                self._pending.remove(mutation)

        if epoch != self._epoch:
            return False
        if error is not None:
            return self._fail(error, action, key)
        self._reconcile(result)
        self._settle()
        return True

    async def _priced(self, record, product, variant):
        """Complete the record from the catalog when the caller gave no payload.

        Runs inside the serialized commit so a slow lookup cannot reorder
        commands for the same key.
        """
        if product is not None or self.catalog is None:
            return record
        product = await self.catalog.product(record.item_kind, record.product_ref)
        if variant is None and record.variant_ref:
            variant = await self.catalog.variant(record.product_ref, record.variant_ref)
        update = {"snapshot": build_snapshot(product, variant)}
        if isinstance(record, CartRecord):
            update["unit_price"] = resolve_unit_price(product, variant)
        return record.model_copy(update=update)

    def _authenticated(self) -> bool:
        return self.mode is SessionMode.AUTHENTICATED


def _checked_key(item_kind, product_ref, variant_ref) -> str:
    try:
        kind = ItemKind(item_kind)
    except ValueError:
        raise InvalidItemError(f"Unknown item kind {item_kind!r}") from None
    if not product_ref:
        raise InvalidItemError("Missing product reference")
    return item_key(kind, product_ref, variant_ref)


def _replace(items: list, key: str, **update) -> list:
    return [item.model_copy(update=update) if item.key == key else item for item in items]


def _without(items: list, key: str) -> list:
    return [item for item in items if item.key != key]


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class CartStore(ReactiveStore):
    name = "cart"

    def __init__(
        self,
        local: LocalRecordStore,
        gateway: CartGateway,
        *,
        catalog: CatalogLookup | None = None,
        mode: SessionMode = SessionMode.GUEST,
        max_line_quantity: int = MAX_LINE_QUANTITY,
    ) -> None:
        super().__init__(local, gateway, catalog=catalog, mode=mode)
        self.max_line_quantity = max_line_quantity

    @property
    def totals(self) -> tuple[int, float]:
        return cart_totals(self.state.items)

    async def add(self, item_kind, product_ref, variant_ref=None, quantity=1, *, product=None, variant=None) -> bool:
        """Add units of an item, summing into the existing line with the same key."""
        try:
            record = CartRecord(
                item_kind=item_kind,
                product_ref=product_ref,
                variant_ref=variant_ref,
                quantity=quantity,
                unit_price=resolve_unit_price(product, variant),
                snapshot=build_snapshot(product, variant),
            )
        except ValidationError as exc:
            return self._fail(exc, "add")
        key = record.key
        current = self.state.find(key)
        if (current.quantity if current else 0) + record.quantity > self.max_line_quantity:
            return self._fail(QuantityLimitError(self.max_line_quantity), "add", key)

        def apply(items):
            existing = next((item for item in items if item.key == key), None)
            if existing is None:
                return [*items, record]
            return _replace(items, key, quantity=existing.quantity + record.quantity)

        async def commit():
            line = await self._priced(record, product, variant)
            if self._authenticated():
                return await self.gateway.add(line)
            stored = self.local.find(key)
            if stored is None:
                return self.local.upsert(line)
            quantity = stored.quantity + record.quantity
            if quantity > self.max_line_quantity:
                raise QuantityLimitError(self.max_line_quantity)
            return self.local.upsert(
                stored.model_copy(
                    update={
                        "quantity": quantity,
                        "unit_price": line.unit_price or stored.unit_price,
                        "snapshot": line.snapshot or stored.snapshot,
                    }
                )
            )

        return await self._command("add", key, apply, commit)

    async def update_quantity(self, item_kind, product_ref, variant_ref, quantity) -> bool:
        """Set a line's quantity. Zero removes the line."""
        try:
            key = _checked_key(item_kind, product_ref, variant_ref)
        except InvalidItemError as exc:
            return self._fail(exc, "update_quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
            return self._fail(InvalidItemError(f"Invalid quantity {quantity!r}"), "update_quantity", key)
        if quantity == 0:
            return await self.remove(item_kind, product_ref, variant_ref)
        if quantity > self.max_line_quantity:
            return self._fail(QuantityLimitError(self.max_line_quantity), "update_quantity", key)

        def apply(items):
            return _replace(items, key, quantity=quantity)

        async def commit():
            if self._authenticated():
                return await self.gateway.update_quantity(item_kind, product_ref, variant_ref, quantity)
            stored = self.local.find(key)
            if stored is None:
                raise InvalidItemError("Item not found in cart")
            return self.local.upsert(stored.model_copy(update={"quantity": quantity}))

        return await self._command("update_quantity", key, apply, commit)

    async def remove(self, item_kind, product_ref, variant_ref=None) -> bool:
        try:
            key = _checked_key(item_kind, product_ref, variant_ref)
        except InvalidItemError as exc:
            return self._fail(exc, "remove")

        async def commit():
            if self._authenticated():
                return await self.gateway.remove(item_kind, product_ref, variant_ref)
            return self.local.remove_by_key(key)

        return await self._command("remove", key, lambda items: _without(items, key), commit)

    async def clear(self) -> bool:
        async def commit():
            if self._authenticated():
                return await self.gateway.clear()
            self.local.clear()
            return []

        return await self._command("clear", CLEAR_KEY, lambda items: [], commit)


# ---------------------------------------------------------------------------
# Wishlist
# ---------------------------------------------------------------------------
class WishlistStore(ReactiveStore):
    name = "wishlist"

    def contains(self, item_kind, product_ref, variant_ref=None) -> bool:
        return item_key(item_kind, product_ref, variant_ref) in self.state

    async def add(self, item_kind, product_ref, variant_ref=None, *, product=None, variant=None) -> bool:
        try:
            record = WishlistRecord(
                item_kind=item_kind,
                product_ref=product_ref,
                variant_ref=variant_ref,
                snapshot=build_snapshot(product, variant),
            )
        except ValidationError as exc:
            return self._fail(exc, "add")
        key = record.key

        def apply(items):
            return items if any(item.key == key for item in items) else [*items, record]

        async def commit():
            line = await self._priced(record, product, variant)
            if self._authenticated():
                return await self.gateway.add(line)
            if self.local.find(key) is not None:
                return self.local.load()
            return self.local.upsert(line)

        return await self._command("add", key, apply, commit)

    async def remove(self, item_kind, product_ref, variant_ref=None) -> bool:
        try:
            key = _checked_key(item_kind, product_ref, variant_ref)
        except InvalidItemError as exc:
            return self._fail(exc, "remove")

        async def commit():
            if self._authenticated():
                return await self.gateway.remove(item_kind, product_ref, variant_ref)
            return self.local.remove_by_key(key)

        return await self._command("remove", key, lambda items: _without(items, key), commit)

    async def toggle(self, item_kind, product_ref, variant_ref=None, *, product=None, variant=None) -> bool:
        if self.contains(item_kind, product_ref, variant_ref):
            return await self.remove(item_kind, product_ref, variant_ref)
        return await self.add(item_kind, product_ref, variant_ref, product=product, variant=variant)

    async def clear(self) -> bool:
        async def commit():
            if self._authenticated():
                return await self.gateway.clear()
            self.local.clear()
            return []

        return await self._command("clear", CLEAR_KEY, lambda items: [], commit)


__all__ = [
    "CartStore",
    "ItemKind",
    "KeyedSerializer",
    "ReactiveStore",
    "SessionMode",
    "StoreState",
    "StoreStatus",
    "WishlistStore",
]
