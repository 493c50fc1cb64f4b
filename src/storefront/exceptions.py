"""Errors raised inside the storefront client engine.

None of these cross a public store or orchestrator operation: they are caught
at the command boundary, logged, and surfaced as ``last_error``.
"""


class StorefrontError(Exception):
    """Base class for client engine errors."""

    reason = "error"


class StorageError(StorefrontError):
    """The key/value storage backend could not be read or written."""

    reason = "storage"


class GatewayError(StorefrontError):
    """A call to the authoritative cart/wishlist API failed."""

    def __init__(self, message: str, *, status: int | None = None, reason: str = "network") -> None:
        self.status = status
        self.reason = reason
        super().__init__(message)


class GatewayTimeout(GatewayError):
    def __init__(self, message: str = "Request timed out") -> None:
        super().__init__(message, reason="timeout")


class InvalidItemError(StorefrontError):
    """A command referenced an unknown line or carried an invalid value."""

    reason = "invalid"


class QuantityLimitError(StorefrontError):
    """A line would exceed the per-line quantity cap."""

    reason = "quantity_limit"

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Quantity cannot exceed {limit} per item")


__all__ = [
    "StorefrontError",
    "StorageError",
    "GatewayError",
    "GatewayTimeout",
    "InvalidItemError",
    "QuantityLimitError",
]
