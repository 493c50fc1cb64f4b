"""Client engine settings, read from ``STOREFRONT_*`` environment variables.

Unparseable values fall back to the defaults rather than failing start-up.
"""

import os
from dataclasses import dataclass, field


def _get_env(key: str, default: str | None = None) -> str | None:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return value


def _get_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


@dataclass
class Settings:
    api_url: str = field(default_factory=lambda: _get_env("STOREFRONT_API_URL", "http://localhost:8000"))
    # Bounded timeout for every gateway call
    request_timeout: float = field(default_factory=lambda: _get_float("STOREFRONT_REQUEST_TIMEOUT", 10.0))
    # Per-record budget during a guest merge
    merge_item_timeout: float = field(default_factory=lambda: _get_float("STOREFRONT_MERGE_ITEM_TIMEOUT", 5.0))
    # None keeps guest data in memory only
    storage_path: str | None = field(default_factory=lambda: _get_env("STOREFRONT_STORAGE_PATH"))

    guest_cart_delay: float = field(default_factory=lambda: _get_float("STOREFRONT_GUEST_CART_DELAY", 0.5))
    guest_wishlist_delay: float = field(default_factory=lambda: _get_float("STOREFRONT_GUEST_WISHLIST_DELAY", 1.0))
    sync_delay: float = field(default_factory=lambda: _get_float("STOREFRONT_SYNC_DELAY", 1.0))
    auth_wishlist_delay: float = field(default_factory=lambda: _get_float("STOREFRONT_AUTH_WISHLIST_DELAY", 1.5))

    max_line_quantity: int = field(default_factory=lambda: _get_int("STOREFRONT_MAX_LINE_QUANTITY", 100))


def get_settings() -> Settings:
    return Settings()
