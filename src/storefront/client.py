"""StorefrontClient: the cart and wishlist engine wired together from settings.

Usage::

    async with StorefrontClient.from_settings() as client:
        await client.cart.add("catalog-item", "P1", quantity=2, product=payload)
        client.sign_in("customer-1", token)
        await client.scheduler.drain()
        await client.sync()  # retry records the sign-in sync kept
"""

import httpx
import structlog

from storefront.catalog import CatalogLookup
from storefront.config import Settings, get_settings
from storefront.gateway import HttpCartGateway, HttpWishlistGateway, build_client
from storefront.gateway.port import CartGateway, WishlistGateway
from storefront.local_store import GuestMarkers, cart_record_store, wishlist_record_store
from storefront.session import AuthSignal, SessionController, TaskScheduler
from storefront.state import CartStore, WishlistStore
from storefront.storage import JsonFileStorage, KeyValueStorage, MemoryStorage
from storefront.sync import SyncOrchestrator, SyncSummary

logger = structlog.get_logger(__name__)


class StorefrontClient:
    def __init__(
        self,
        settings: Settings,
        storage: KeyValueStorage,
        cart_gateway: CartGateway,
        wishlist_gateway: WishlistGateway,
        *,
        auth: AuthSignal | None = None,
        catalog: CatalogLookup | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.auth = auth or AuthSignal()
        self._http = http

        cart_local = cart_record_store(storage)
        wishlist_local = wishlist_record_store(storage)
        self.cart = CartStore(
            cart_local,
            cart_gateway,
            catalog=catalog,
            max_line_quantity=settings.max_line_quantity,
        )
        self.wishlist = WishlistStore(wishlist_local, wishlist_gateway, catalog=catalog)

        self.cart_sync = SyncOrchestrator(
            "cart",
            cart_local,
            self.cart,
            GuestMarkers(storage, "cart"),
            merge_item_timeout=settings.merge_item_timeout,
        )
        self.wishlist_sync = SyncOrchestrator(
            "wishlist",
            wishlist_local,
            self.wishlist,
            GuestMarkers(storage, "wishlist"),
            merge_item_timeout=settings.merge_item_timeout,
        )
        self.scheduler = TaskScheduler()
        self.controller = SessionController(
            self.auth,
            self.cart,
            self.wishlist,
            self.cart_sync,
            self.wishlist_sync,
            settings,
            self.scheduler,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        catalog: CatalogLookup | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        storage: KeyValueStorage | None = None,
    ) -> "StorefrontClient":
        """Build a client talking HTTP to ``settings.api_url``.

        ``transport`` is handed to ``httpx``; pass an ``ASGITransport`` to run
        against an in-process app.
        """
        settings = settings or get_settings()
        if storage is None:
            storage = JsonFileStorage(settings.storage_path) if settings.storage_path else MemoryStorage()
        auth = AuthSignal()
        http = build_client(
            settings.api_url,
            settings.request_timeout,
            lambda: auth.token,
            transport=transport,
        )
        return cls(
            settings,
            storage,
            HttpCartGateway(http),
            HttpWishlistGateway(http),
            auth=auth,
            catalog=catalog,
            http=http,
        )

    def start(self) -> None:
        self.controller.start()

    def sign_in(self, identity: str, token: str) -> None:
        self.auth.sign_in(identity, token)

    def sign_out(self) -> None:
        self.auth.sign_out()

    async def sync(self) -> tuple[SyncSummary, ...]:
        """Retry the guest syncs now, for records an earlier run had to keep."""
        return await self.controller.sync_now()

    async def aclose(self) -> None:
        self.controller.close()
        if self._http is not None:
            await self._http.aclose()
        logger.debug("Storefront client closed")

    async def __aenter__(self) -> "StorefrontClient":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
