"""Shopping bounded context: authoritative carts and wishlists.

Holds the server-side source of truth for each customer's cart and wishlist,
including the merge protocol that absorbs guest records collected on the
client before the customer authenticated.
"""

import structlog
from protean.domain import Domain

shopping = Domain(name="shopping")

logger = structlog.get_logger(__name__)
