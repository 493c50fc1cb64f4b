"""Shopping domain API package."""

from shopping.api.routes import cart_router, wishlist_router

__all__ = ["cart_router", "wishlist_router"]
