"""Configurable in-memory gateways for development and testing.

They apply the same merge policy as the shopping service (sum into existing
lines, per-record idempotency tokens, 100-unit line cap) without any network
calls, and can be configured at runtime to be slow or to fail:

- ``delays``: seconds to wait per method name (``"add"``, ``"merge"`` ...)
- ``key_delays``: extra seconds to wait when a call touches a given item key
- ``failures``: method name -> ``GatewayError`` to raise
- ``reject_keys``: item key -> reason reported as a failed merge outcome

Every call is recorded in ``calls``.
"""

import asyncio
from uuid import uuid4

from storefront.exceptions import GatewayError
from storefront.gateway.port import (
    CartGateway,
    MergeOutcome,
    MergeResult,
    RemoteSnapshot,
    WishlistGateway,
)
from storefront.keys import item_key
from storefront.records import MAX_LINE_QUANTITY, CartRecord, ItemKind, WishlistRecord, utcnow


class _FakeGateway:
    def __init__(self) -> None:
        self.lines: dict[str, CartRecord | WishlistRecord] = {}
        self.revision = 0
        self.calls: list[dict] = []
        self.delays: dict[str, float] = {}
        self.key_delays: dict[str, float] = {}
        self.failures: dict[str, GatewayError] = {}
        self.reject_keys: dict[str, str] = {}

    def fail(self, method: str, error: GatewayError | None = None) -> None:
        """Make every later call to ``method`` raise."""
        self.failures[method] = error or GatewayError(f"{method} rejected", status=500, reason="rejected")

    def recover(self, method: str | None = None) -> None:
        if method is None:
            self.failures.clear()
        else:
            self.failures.pop(method, None)

    async def _enter(self, method: str, keys=(), **details) -> None:
        self.calls.append({"method": method, "keys": list(keys), **details})
        delay = self.delays.get(method, 0) + sum(self.key_delays.get(key, 0) for key in keys)
        if delay:
            await asyncio.sleep(delay)
        if method in self.failures:
            raise self.failures[method]

    def _snapshot(self) -> RemoteSnapshot:
        return RemoteSnapshot(items=tuple(self.lines.values()), revision=self.revision)

    def _bump(self) -> RemoteSnapshot:
        self.revision += 1
        return self._snapshot()

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    async def fetch(self) -> RemoteSnapshot:
        await self._enter("fetch")
        return self._snapshot()

    async def remove(self, item_kind, product_ref, variant_ref) -> RemoteSnapshot:
        key = item_key(ItemKind(item_kind), product_ref, variant_ref)
        await self._enter("remove", [key])
        if key not in self.lines:
            raise GatewayError("Item not found", status=400, reason="rejected")
        del self.lines[key]
        return self._bump()

    async def clear(self) -> RemoteSnapshot:
        await self._enter("clear")
        self.lines.clear()
        return self._bump()


def _server_copy(record, **update):
    return record.model_copy(update={"item_id": f"line_{uuid4().hex[:12]}", "added_at": utcnow(), **update})


class FakeCartGateway(_FakeGateway, CartGateway):
    def __init__(self) -> None:
        super().__init__()
        self.merged_tokens: dict[str, int] = {}

    def seed(self, *records: CartRecord) -> None:
        for record in records:
            self.lines[record.key] = _server_copy(record)
        self.revision += 1

    async def add(self, record: CartRecord) -> RemoteSnapshot:
        await self._enter("add", [record.key], quantity=record.quantity)
        existing = self.lines.get(record.key)
        quantity = record.quantity + (existing.quantity if existing else 0)
        if quantity > MAX_LINE_QUANTITY:
            raise GatewayError(f"Quantity cannot exceed {MAX_LINE_QUANTITY} per item", status=400, reason="rejected")
        if existing:
            self.lines[record.key] = existing.model_copy(update={"quantity": quantity})
        else:
            self.lines[record.key] = _server_copy(record)
        return self._bump()

    async def update_quantity(self, item_kind, product_ref, variant_ref, quantity) -> RemoteSnapshot:
        key = item_key(ItemKind(item_kind), product_ref, variant_ref)
        await self._enter("update_quantity", [key], quantity=quantity)
        if key not in self.lines:
            raise GatewayError("Item not found", status=400, reason="rejected")
        if quantity == 0:
            del self.lines[key]
        else:
            self.lines[key] = self.lines[key].model_copy(update={"quantity": quantity})
        return self._bump()

    async def merge(self, records, source_session_id, strategy="merge") -> MergeResult:
        keys = [record.key for record in records]
        await self._enter("merge", keys, source_session_id=source_session_id, strategy=strategy)
        if strategy == "replace":
            self.lines.clear()
            self.merged_tokens.clear()

        outcomes = []
        for record in records:
            if record.key in self.reject_keys:
                outcomes.append(MergeOutcome(key=record.key, status="failed", reason=self.reject_keys[record.key]))
                continue
            token = f"{source_session_id or 'anonymous'}/{record.item_id}"
            delta = record.quantity - self.merged_tokens.get(token, 0)
            existing = self.lines.get(record.key)
            if delta > 0:
                quantity = delta + (existing.quantity if existing else 0)
                if quantity > MAX_LINE_QUANTITY:
                    outcomes.append(MergeOutcome(key=record.key, status="failed", reason="quantity_limit"))
                    continue
                if existing:
                    self.lines[record.key] = existing.model_copy(update={"quantity": quantity})
                else:
                    self.lines[record.key] = _server_copy(record, quantity=quantity)
                self.merged_tokens[token] = record.quantity
            outcomes.append(MergeOutcome(key=record.key, status="synced"))

        return MergeResult(outcomes=tuple(outcomes), snapshot=self._bump())


class FakeWishlistGateway(_FakeGateway, WishlistGateway):
    def seed(self, *records: WishlistRecord) -> None:
        for record in records:
            self.lines[record.key] = _server_copy(record)
        self.revision += 1

    async def add(self, record: WishlistRecord) -> RemoteSnapshot:
        await self._enter("add", [record.key])
        if record.key not in self.lines:
            self.lines[record.key] = _server_copy(record)
        return self._bump()

    async def merge(self, records, source_session_id, strategy="merge") -> MergeResult:
        keys = [record.key for record in records]
        await self._enter("merge", keys, source_session_id=source_session_id, strategy=strategy)
        if strategy == "replace":
            self.lines.clear()

        outcomes = []
        for record in records:
            if record.key in self.reject_keys:
                outcomes.append(MergeOutcome(key=record.key, status="failed", reason=self.reject_keys[record.key]))
                continue
            if record.key not in self.lines:
                self.lines[record.key] = _server_copy(record)
            outcomes.append(MergeOutcome(key=record.key, status="synced"))

        return MergeResult(outcomes=tuple(outcomes), snapshot=self._bump())
