"""Catalog lookup port and snapshot building.

The catalog is a read-only collaborator: given a product reference (and
optionally a variant reference) it returns raw payloads, from which the
engine resolves a unit price and builds a closed-field display snapshot.
"""

from abc import ABC, abstractmethod

from storefront.keys import normalize_variant
from storefront.records import ItemKind, ItemSnapshot


class CatalogLookup(ABC):
    @abstractmethod
    async def product(self, item_kind: ItemKind, product_ref: str) -> dict | None:
        """Return the product or prebuilt-item payload, or None if unknown."""

    @abstractmethod
    async def variant(self, product_ref: str, variant_ref: str) -> dict | None: ...


class MemoryCatalog(CatalogLookup):
    """Payloads keyed by ``(item kind value, product ref)``; variants nested under ``variants``."""

    def __init__(self, products: dict[tuple[str, str], dict] | None = None) -> None:
        self.products = dict(products or {})

    def put(self, item_kind, product_ref: str, payload: dict) -> None:
        self.products[(ItemKind(item_kind).value, str(product_ref))] = payload

    async def product(self, item_kind, product_ref):
        return self.products.get((ItemKind(item_kind).value, str(product_ref)))

    async def variant(self, product_ref, variant_ref):
        for (_, ref), payload in self.products.items():
            if ref != str(product_ref):
                continue
            for variant in payload.get("variants") or []:
                if normalize_variant(_variant_id(variant)) == normalize_variant(variant_ref):
                    return variant
        return None


def _variant_id(variant: dict):
    return variant.get("variantId") or variant.get("_id") or variant.get("id")


def _thumbnail(payload: dict) -> str | None:
    if isinstance(payload.get("thumbnail"), str):
        return payload["thumbnail"]
    images = payload.get("images")
    if not isinstance(images, dict):
        return None
    for slot in ("thumbnail", "main"):
        image = images.get(slot)
        if isinstance(image, dict) and isinstance(image.get("url"), str):
            return image["url"]
    return None


def _stock(payload: dict):
    for field in ("stock", "stockQuantity", "stock_quantity"):
        value = payload.get(field)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _brand(payload: dict) -> str | None:
    brand = payload.get("brand")
    if isinstance(brand, dict):
        brand = brand.get("name")
    return brand if isinstance(brand, str) else None


def build_snapshot(product: dict | None, variant: dict | None = None) -> ItemSnapshot | None:
    """Denormalize the display fields.

    Name and brand come from the product; a variant's thumbnail and stock
    win over the product's.
    """
    fields = {}
    if isinstance(product, dict):
        fields.update(
            {
                "name": product.get("name") if isinstance(product.get("name"), str) else None,
                "brand": _brand(product),
            }
        )
    for payload in (product, variant):
        if not isinstance(payload, dict):
            continue
        candidates = {"thumbnail": _thumbnail(payload), "stock": _stock(payload)}
        fields.update({name: value for name, value in candidates.items() if value is not None})
    fields = {name: value for name, value in fields.items() if value is not None}
    if not fields:
        return None
    return ItemSnapshot(**fields)
