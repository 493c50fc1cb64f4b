"""Remote gateway to the authoritative cart and wishlist API.

- Fake*Gateway for development and testing
- Http*Gateway for a running shopping service
"""

from storefront.gateway.fake_adapter import FakeCartGateway, FakeWishlistGateway
from storefront.gateway.http_adapter import HttpCartGateway, HttpWishlistGateway, build_client
from storefront.gateway.port import CartGateway, MergeOutcome, MergeResult, RemoteSnapshot, WishlistGateway

__all__ = [
    "CartGateway",
    "WishlistGateway",
    "MergeOutcome",
    "MergeResult",
    "RemoteSnapshot",
    "FakeCartGateway",
    "FakeWishlistGateway",
    "HttpCartGateway",
    "HttpWishlistGateway",
    "build_client",
]
