"""Remote gateway ports (abstract interfaces).

Define the contract to the authoritative cart and wishlist API. Items are
always addressed by the (item kind, product ref, variant ref) tuple, never
by a guest-local id. Adapters raise ``GatewayError`` (or ``GatewayTimeout``)
on failure; they never return partial results.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from storefront.records import CartRecord, WishlistRecord


@dataclass(frozen=True)
class RemoteSnapshot:
    """The authoritative collection as echoed by the server."""

    items: tuple
    revision: int


@dataclass(frozen=True)
class MergeOutcome:
    """Outcome of absorbing one guest record."""

    key: str
    status: str  # "synced" | "failed"
    reason: str | None = None

    @property
    def synced(self) -> bool:
        return self.status == "synced"


@dataclass(frozen=True)
class MergeResult:
    outcomes: tuple[MergeOutcome, ...]
    snapshot: RemoteSnapshot


class CartGateway(ABC):
    @abstractmethod
    async def fetch(self) -> RemoteSnapshot: ...

    @abstractmethod
    async def add(self, record: CartRecord) -> RemoteSnapshot:
        """Add the record's quantity to the line with the same item key."""
        ...

    @abstractmethod
    async def update_quantity(self, item_kind, product_ref, variant_ref, quantity: int) -> RemoteSnapshot:
        """Set a line's quantity; zero removes the line."""
        ...

    @abstractmethod
    async def remove(self, item_kind, product_ref, variant_ref) -> RemoteSnapshot: ...

    @abstractmethod
    async def clear(self) -> RemoteSnapshot: ...

    @abstractmethod
    async def merge(
        self,
        records: list[CartRecord],
        source_session_id: str | None,
        strategy: str = "merge",
    ) -> MergeResult:
        """Bulk-absorb guest records. Idempotent per item key and session."""
        ...


class WishlistGateway(ABC):
    @abstractmethod
    async def fetch(self) -> RemoteSnapshot: ...

    @abstractmethod
    async def add(self, record: WishlistRecord) -> RemoteSnapshot: ...

    @abstractmethod
    async def remove(self, item_kind, product_ref, variant_ref) -> RemoteSnapshot: ...

    @abstractmethod
    async def clear(self) -> RemoteSnapshot: ...

    @abstractmethod
    async def merge(
        self,
        records: list[WishlistRecord],
        source_session_id: str | None,
        strategy: str = "merge",
    ) -> MergeResult: ...
