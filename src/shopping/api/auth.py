"""Bearer token authentication for the Shopping API.

Tokens have the shape ``<customer_id>.<hex hmac-sha256 of customer_id>`` and
are signed with ``SHOPPING_AUTH_SECRET``. Issuing tokens belongs to the
identity provider; ``issue_token`` exists for development and tests.
"""

import hashlib
import hmac
import os

from fastapi import Header, HTTPException

_DEV_SECRET = "dev-shopping-secret"


def _secret() -> bytes:
    return os.environ.get("SHOPPING_AUTH_SECRET", _DEV_SECRET).encode()


def _sign(customer_id: str) -> str:
    return hmac.new(_secret(), customer_id.encode(), hashlib.sha256).hexdigest()


def issue_token(customer_id: str) -> str:
    return f"{customer_id}.{_sign(customer_id)}"


def verify_token(token: str) -> str | None:
    """Return the customer id carried by a valid token, or None."""
    customer_id, _, signature = token.rpartition(".")
    if not customer_id or not signature:
        return None
    if not hmac.compare_digest(_sign(customer_id), signature):
        return None
    return customer_id


async def authenticated_customer(authorization: str = Header(default="")) -> str:
    """FastAPI dependency resolving the signed-in customer from the bearer token."""
    scheme, _, token = authorization.partition(" ")
    customer_id = verify_token(token.strip()) if scheme.lower() == "bearer" else None
    if customer_id is None:
        raise HTTPException(status_code=401, detail="Missing or invalid bearer token")
    return customer_id
