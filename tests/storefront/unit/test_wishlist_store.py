"""Tests for the reactive wishlist store."""

import asyncio

from storefront.gateway import FakeWishlistGateway
from storefront.keys import item_key
from storefront.local_store import wishlist_record_store
from storefront.state import SessionMode, StoreStatus, WishlistStore
from storefront.storage import MemoryStorage

P1 = item_key("catalog-item", "P1")


def _store(mode=SessionMode.GUEST, gateway=None):
    return WishlistStore(wishlist_record_store(MemoryStorage()), gateway or FakeWishlistGateway(), mode=mode)


def test_add_is_presence_based():
    store = _store()

    async def scenario():
        await store.add("catalog-item", "P1", product={"name": "Mouse"})
        await store.add("catalog-item", "P1")

    asyncio.run(scenario())
    (record,) = store.local.load()
    assert record.snapshot.name == "Mouse"
    assert store.contains("catalog-item", "P1")


def test_toggle_adds_then_removes():
    store = _store()

    asyncio.run(store.toggle("prebuilt-item", "PC1"))
    assert store.contains("prebuilt-item", "PC1")

    asyncio.run(store.toggle("prebuilt-item", "PC1"))
    assert not store.contains("prebuilt-item", "PC1")
    assert store.local.load() == []


def test_variant_is_part_of_identity():
    store = _store()

    async def scenario():
        await store.add("catalog-item", "P1")
        await store.add("catalog-item", "P1", "V1")

    asyncio.run(scenario())
    assert len(store.state.items) == 2


def test_authenticated_add_and_clear_go_to_gateway():
    gateway = FakeWishlistGateway()
    store = _store(SessionMode.AUTHENTICATED, gateway)

    async def scenario():
        await store.add("catalog-item", "P1")
        await store.add("catalog-item", "P2")
        await store.clear()

    asyncio.run(scenario())
    assert gateway.lines == {}
    assert [call["method"] for call in gateway.calls] == ["add", "add", "clear"]
    assert store.state.items == ()


def test_failed_remove_restores_item():
    gateway = FakeWishlistGateway()
    store = _store(SessionMode.AUTHENTICATED, gateway)

    async def scenario():
        await store.add("catalog-item", "P1")
        gateway.fail("remove")
        return await store.remove("catalog-item", "P1")

    assert asyncio.run(scenario()) is False
    assert P1 in store.state
    assert store.state.status is StoreStatus.ERROR


def test_add_then_remove_in_quick_succession():
    gateway = FakeWishlistGateway()
    gateway.delays["add"] = 0.05
    store = _store(SessionMode.AUTHENTICATED, gateway)

    async def scenario():
        await asyncio.gather(store.add("catalog-item", "P1"), store.remove("catalog-item", "P1"))

    asyncio.run(scenario())
    assert P1 not in store.state
    assert P1 not in gateway.lines
