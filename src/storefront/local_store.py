"""Local record store: guest cart and wishlist records in key/value storage.

Pure data access, no business rules. Every stored entry is revalidated on
``load``: identifiers are regenerated, quantities clamped to at least one,
prices clamped to zero or more, malformed snapshots dropped and legacy field
names migrated. Entries that cannot be repaired are dropped. ``load`` never
raises; write failures raise ``StorageError`` so callers can roll back.
"""

import json
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Generic, TypeVar
from uuid import uuid4

import structlog
from pydantic import ValidationError

from storefront.catalog import build_snapshot
from storefront.exceptions import StorageError
from storefront.keys import normalize_variant
from storefront.records import (
    LEGACY_KINDS,
    MAX_LINE_QUANTITY,
    CartRecord,
    ItemKind,
    ItemSnapshot,
    WishlistRecord,
    new_item_id,
    utcnow,
)
from storefront.storage import KeyValueStorage

logger = structlog.get_logger(__name__)


class StorageKeys:
    GUEST_CART = "guest_cart"
    GUEST_WISHLIST = "guest_wishlist"
    LAST_SYNCED_USER = "last_synced_user"
    CART_SESSION_ID = "cart_session_id"
    WISHLIST_SESSION_ID = "wishlist_session_id"


R = TypeVar("R", CartRecord, WishlistRecord)


# ---------------------------------------------------------------------------
# Migration of stored entries
# ---------------------------------------------------------------------------
def _first(entry: dict, *names):
    for name in names:
        value = entry.get(name)
        if value not in (None, ""):
            return value
    return None


def _text(value) -> str | None:
    return None if value is None else str(value)


def _kind(entry: dict) -> str:
    raw = _first(entry, "itemKind", "item_kind", "productType") or ItemKind.CATALOG_ITEM.value
    if not isinstance(raw, str):
        return raw
    legacy = LEGACY_KINDS.get(raw)
    return legacy.value if legacy else raw


def _timestamp(value) -> datetime:
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return utcnow()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return utcnow()


def _number(value, default):
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _snapshot(entry: dict) -> ItemSnapshot | None:
    raw = entry.get("snapshot")
    if isinstance(raw, dict):
        try:
            return ItemSnapshot.model_validate(raw)
        except ValidationError:
            return None
    product = _first(entry, "product", "preBuiltPC", "productData")
    variant = entry.get("variant")
    if isinstance(product, dict) or isinstance(variant, dict):
        return build_snapshot(
            product if isinstance(product, dict) else None,
            variant if isinstance(variant, dict) else None,
        )
    return None


def _common_fields(entry: dict) -> dict:
    return {
        "item_id": str(_first(entry, "itemId", "item_id", "_id") or new_item_id()),
        "item_kind": _kind(entry),
        "product_ref": _text(_first(entry, "productRef", "product_ref", "productId", "pcId")),
        "variant_ref": normalize_variant(_first(entry, "variantRef", "variant_ref", "variantId")),
        "added_at": _timestamp(_first(entry, "addedAt", "added_at")),
        "snapshot": _snapshot(entry),
    }


def migrate_cart_entry(entry) -> CartRecord | None:
    if not isinstance(entry, dict):
        return None
    quantity = int(_number(entry.get("quantity"), 1))
    price = _number(_first(entry, "unitPrice", "unit_price", "price"), 0.0)
    try:
        return CartRecord(
            **_common_fields(entry),
            quantity=min(max(1, quantity), MAX_LINE_QUANTITY),
            unit_price=max(0.0, price),
        )
    except ValidationError as exc:
        logger.warning("Dropped malformed guest cart record", errors=exc.error_count())
        return None


def migrate_wishlist_entry(entry) -> WishlistRecord | None:
    if not isinstance(entry, dict):
        return None
    try:
        return WishlistRecord(**_common_fields(entry))
    except ValidationError as exc:
        logger.warning("Dropped malformed guest wishlist record", errors=exc.error_count())
        return None


def _merge_cart_duplicates(first: CartRecord, other: CartRecord) -> CartRecord:
    quantity = min(first.quantity + other.quantity, MAX_LINE_QUANTITY)
    return first.model_copy(update={"quantity": quantity})


def _keep_first(first, other):
    return first


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------
class LocalRecordStore(Generic[R]):
    def __init__(self, storage: KeyValueStorage, key: str, migrate, collapse) -> None:
        self.storage = storage
        self.key = key
        self._migrate = migrate
        self._collapse = collapse

    def load(self) -> list[R]:
        try:
            raw = self.storage.get(self.key)
        except StorageError as exc:
            logger.error("Guest records unreadable, starting empty", key=self.key, error=str(exc))
            return []
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Guest records are not valid JSON, starting empty", key=self.key)
            return []
        if not isinstance(entries, list):
            logger.warning("Guest records are not a list, starting empty", key=self.key)
            return []

        records: dict[str, R] = {}
        for entry in entries:
            record = self._migrate(entry)
            if record is None:
                continue
            existing = records.get(record.key)
            records[record.key] = self._collapse(existing, record) if existing else record
        return list(records.values())

    def save(self, records: list[R]) -> None:
        payload = json.dumps([record.to_document() for record in records])
        self.storage.set(self.key, payload)

    def find(self, key: str) -> R | None:
        return next((record for record in self.load() if record.key == key), None)

    def upsert(self, record: R) -> list[R]:
        """Insert the record, or replace the stored record with the same item key."""
        records = self.load()
        for index, existing in enumerate(records):
            if existing.key == record.key:
                records[index] = record
                break
        else:
            records.append(record)
        self.save(records)
        return records

    def remove_by_key(self, key: str) -> list[R]:
        return self.remove_keys({key})

    def remove_keys(self, keys) -> list[R]:
        records = [record for record in self.load() if record.key not in keys]
        self.save(records)
        return records

    def clear(self) -> None:
        self.storage.delete(self.key)


def cart_record_store(storage: KeyValueStorage) -> LocalRecordStore[CartRecord]:
    return LocalRecordStore(storage, StorageKeys.GUEST_CART, migrate_cart_entry, _merge_cart_duplicates)


def wishlist_record_store(storage: KeyValueStorage) -> LocalRecordStore[WishlistRecord]:
    return LocalRecordStore(storage, StorageKeys.GUEST_WISHLIST, migrate_wishlist_entry, _keep_first)


# ---------------------------------------------------------------------------
# Guest markers
# ---------------------------------------------------------------------------
SESSION_KEYS = {
    "cart": StorageKeys.CART_SESSION_ID,
    "wishlist": StorageKeys.WISHLIST_SESSION_ID,
}
MARKED_COLLECTIONS = tuple(SESSION_KEYS)


@dataclass(frozen=True)
class SyncMarker:
    identity: str
    synced_at: datetime | None = None

    def to_document(self) -> dict:
        return {
            "identity": self.identity,
            "synced_at": self.synced_at.isoformat() if self.synced_at else None,
        }


def _marker(value) -> SyncMarker | None:
    if isinstance(value, str | int) and not isinstance(value, bool):
        return SyncMarker(identity=str(value))
    if not isinstance(value, dict) or not value.get("identity"):
        return None
    synced_at = value.get("synced_at")
    return SyncMarker(
        identity=str(value["identity"]),
        synced_at=_timestamp(synced_at) if isinstance(synced_at, str) else None,
    )


class GuestMarkers:
    """Guest session correlation id and last-synced-identity marker of one collection.

    The cart and the wishlist sync independently, so each keeps its own
    session id and its own entry in the shared ``last_synced_user``
    document. Markers written by older clients (a bare user id, or a single
    ``{identity, synced_at}`` object) apply to every collection until the
    collection records its own.
    """

    def __init__(self, storage: KeyValueStorage, collection: str = "cart") -> None:
        if collection not in MARKED_COLLECTIONS:
            raise ValueError(f"Unknown marked collection {collection!r}")
        self.storage = storage
        self.collection = collection
        self.session_key = SESSION_KEYS[collection]
        self._fallback_session_id: str | None = None

    def session_id(self) -> str:
        try:
            session_id = self.storage.get(self.session_key)
        except StorageError as exc:
            logger.error("Session id unreadable", collection=self.collection, error=str(exc))
            session_id = self._fallback_session_id
        if session_id:
            return session_id
        return self.rotate_session_id()

    def rotate_session_id(self) -> str:
        session_id = f"session_{uuid4().hex}"
        self._fallback_session_id = session_id
        try:
            self.storage.set(self.session_key, session_id)
        except StorageError as exc:
            logger.error("Session id not persisted", collection=self.collection, error=str(exc))
        return session_id

    def _markers(self) -> dict[str, SyncMarker]:
        try:
            raw = self.storage.get(StorageKeys.LAST_SYNCED_USER)
        except StorageError as exc:
            logger.error("Last synced marker unreadable", error=str(exc))
            return {}
        if not raw:
            return {}
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            # Older clients stored the bare user id
            value = raw
        if isinstance(value, dict) and "identity" not in value:
            markers = {}
            for collection in MARKED_COLLECTIONS:
                marker = _marker(value.get(collection))
                if marker is not None:
                    markers[collection] = marker
            return markers
        legacy = _marker(value)
        if legacy is None:
            return {}
        return {collection: legacy for collection in MARKED_COLLECTIONS}

    def last_synced(self) -> SyncMarker | None:
        return self._markers().get(self.collection)

    def record_synced(self, identity: str, at: datetime | None = None) -> SyncMarker:
        """Record that this collection synced for ``identity`` up to ``at``.

        Repeated syncs for the same identity never move the marker backwards.
        """
        markers = self._markers()
        marker = SyncMarker(identity=identity, synced_at=at or utcnow())
        previous = markers.get(self.collection)
        if (
            previous is not None
            and previous.identity == identity
            and previous.synced_at is not None
            and previous.synced_at > marker.synced_at
        ):
            marker = previous
        markers[self.collection] = marker
        self.storage.set(
            StorageKeys.LAST_SYNCED_USER,
            json.dumps({collection: entry.to_document() for collection, entry in markers.items()}),
        )
        return marker
