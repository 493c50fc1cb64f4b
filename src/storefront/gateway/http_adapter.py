"""HTTP adapters for the cart and wishlist API, built on ``httpx``.

Both adapters share one ``httpx.AsyncClient`` (owned by the caller) whose
timeout bounds every call. The bearer token is read from the auth signal at
request time, so a sign-in or account switch never needs a new client.
"""

from collections.abc import Callable

import httpx
import structlog
from pydantic import ValidationError

from storefront.exceptions import GatewayError, GatewayTimeout
from storefront.gateway.port import (
    CartGateway,
    MergeOutcome,
    MergeResult,
    RemoteSnapshot,
    WishlistGateway,
)
from storefront.records import CartRecord, ItemKind, WishlistRecord

logger = structlog.get_logger(__name__)


class SessionTokenAuth(httpx.Auth):
    """Injects ``Authorization: Bearer <token>`` when a token is available."""

    def __init__(self, token_provider: Callable[[], str | None]) -> None:
        self.token_provider = token_provider

    def auth_flow(self, request):
        token = self.token_provider()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


def build_client(base_url: str, timeout: float, token_provider, transport=None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        auth=SessionTokenAuth(token_provider),
        transport=transport,
    )


def _identity(item_kind, product_ref, variant_ref) -> dict:
    return {
        "item_kind": ItemKind(item_kind).value,
        "product_ref": str(product_ref),
        "variant_ref": variant_ref or None,
    }


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


class _HttpGateway:
    path = ""
    record_type: type = CartRecord
    collection_field = "cart"

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def _request(self, method: str, url: str, payload: dict | None = None) -> dict:
        try:
            response = await self.client.request(method, url, json=payload)
        except httpx.TimeoutException as exc:
            raise GatewayTimeout(f"{method} {url} timed out") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"{method} {url} failed: {exc}", reason="network") from exc

        if response.status_code == 401:
            raise GatewayError("Not authenticated", status=401, reason="unauthorized")
        if response.status_code >= 400:
            raise GatewayError(_error_detail(response), status=response.status_code, reason="rejected")
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError("Response is not JSON", status=response.status_code, reason="malformed") from exc

    def _snapshot(self, body: dict) -> RemoteSnapshot:
        try:
            items = tuple(self.record_type.model_validate(item) for item in body["items"])
            return RemoteSnapshot(items=items, revision=int(body["revision"]))
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            raise GatewayError(f"Unexpected response shape: {exc}", reason="malformed") from exc

    async def fetch(self) -> RemoteSnapshot:
        return self._snapshot(await self._request("GET", self.path))

    async def remove(self, item_kind, product_ref, variant_ref) -> RemoteSnapshot:
        body = await self._request("DELETE", self.path, _identity(item_kind, product_ref, variant_ref))
        return self._snapshot(body)

    async def clear(self) -> RemoteSnapshot:
        return self._snapshot(await self._request("DELETE", f"{self.path}/clear"))

    def _guest_item(self, record) -> dict:
        return {
            "guest_item_id": record.item_id,
            **_identity(record.item_kind, record.product_ref, record.variant_ref),
            "snapshot": record.snapshot.model_dump() if record.snapshot else None,
        }

    async def merge(self, records, source_session_id, strategy="merge") -> MergeResult:
        body = await self._request(
            "POST",
            f"{self.path}/sync",
            {
                "source_session_id": source_session_id,
                "strategy": strategy,
                "items": [self._guest_item(record) for record in records],
            },
        )
        results = body.get("results") if isinstance(body, dict) else None
        if (
            not isinstance(results, list)
            or len(results) != len(records)
            or not all(isinstance(result, dict) for result in results)
        ):
            raise GatewayError("Merge response does not match the submitted records", reason="malformed")

        outcomes = tuple(
            MergeOutcome(key=record.key, status=result.get("status", "failed"), reason=result.get("reason"))
            for record, result in zip(records, results, strict=True)
        )
        logger.debug("Merge response received", path=self.path, submitted=len(records))
        return MergeResult(outcomes=outcomes, snapshot=self._snapshot(body.get(self.collection_field)))


class HttpCartGateway(_HttpGateway, CartGateway):
    path = "/cart"
    record_type = CartRecord
    collection_field = "cart"

    async def add(self, record: CartRecord) -> RemoteSnapshot:
        payload = {
            **_identity(record.item_kind, record.product_ref, record.variant_ref),
            "quantity": record.quantity,
            "unit_price": record.unit_price,
            "snapshot": record.snapshot.model_dump() if record.snapshot else None,
        }
        return self._snapshot(await self._request("POST", self.path, payload))

    async def update_quantity(self, item_kind, product_ref, variant_ref, quantity) -> RemoteSnapshot:
        payload = {**_identity(item_kind, product_ref, variant_ref), "quantity": quantity}
        return self._snapshot(await self._request("PUT", self.path, payload))

    def _guest_item(self, record: CartRecord) -> dict:
        return {**super()._guest_item(record), "quantity": record.quantity, "unit_price": record.unit_price}


class HttpWishlistGateway(_HttpGateway, WishlistGateway):
    path = "/wishlist"
    record_type = WishlistRecord
    collection_field = "wishlist"

    async def add(self, record: WishlistRecord) -> RemoteSnapshot:
        payload = {
            **_identity(record.item_kind, record.product_ref, record.variant_ref),
            "snapshot": record.snapshot.model_dump() if record.snapshot else None,
        }
        return self._snapshot(await self._request("POST", self.path, payload))
