"""Tests for the in-memory catalog and snapshot building."""

import asyncio

from storefront.catalog import MemoryCatalog, build_snapshot
from storefront.records import ItemKind

PRODUCT = {
    "name": "Mechanical Keyboard",
    "brand": {"name": "Keychron"},
    "images": {"main": {"url": "kb.png"}},
    "stock": 8,
    "basePrice": 120,
    "variants": [
        {"variantId": "V1", "thumbnail": "kb-red.png", "stock": 2, "offerPrice": 99},
        {"_id": "V2", "stockQuantity": 0},
    ],
}


class TestBuildSnapshot:
    def test_product_only(self):
        snapshot = build_snapshot(PRODUCT)
        assert snapshot.name == "Mechanical Keyboard"
        assert snapshot.brand == "Keychron"
        assert snapshot.thumbnail == "kb.png"
        assert snapshot.stock == 8

    def test_variant_thumbnail_and_stock_win(self):
        snapshot = build_snapshot(PRODUCT, PRODUCT["variants"][0])
        assert snapshot.name == "Mechanical Keyboard"
        assert snapshot.thumbnail == "kb-red.png"
        assert snapshot.stock == 2

    def test_zero_stock_is_kept(self):
        assert build_snapshot(PRODUCT, PRODUCT["variants"][1]).stock == 0

    def test_nothing_usable(self):
        assert build_snapshot(None) is None
        assert build_snapshot({"price": 5}) is None


class TestMemoryCatalog:
    def test_lookup_by_kind_and_ref(self):
        catalog = MemoryCatalog()
        catalog.put("catalog-item", "P1", PRODUCT)

        assert asyncio.run(catalog.product(ItemKind.CATALOG_ITEM, "P1")) is PRODUCT
        assert asyncio.run(catalog.product("prebuilt-item", "P1")) is None

    def test_variant_lookup(self):
        catalog = MemoryCatalog({("catalog-item", "P1"): PRODUCT})
        assert asyncio.run(catalog.variant("P1", "V2")) == {"_id": "V2", "stockQuantity": 0}
        assert asyncio.run(catalog.variant("P1", "V9")) is None
