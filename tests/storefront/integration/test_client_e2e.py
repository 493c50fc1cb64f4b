"""End-to-end: the storefront client against the shopping API in-process."""

import asyncio

import httpx
import pytest
from app import create_app
from shopping.api.auth import issue_token
from shopping.cart.items import cart_for_customer
from shopping.wishlist.items import wishlist_for_customer
from storefront.client import StorefrontClient
from storefront.config import Settings
from storefront.exceptions import GatewayError
from storefront.gateway import HttpCartGateway, build_client
from storefront.keys import item_key
from storefront.records import CartRecord
from storefront.sync import SyncStatus

CUSTOMER = "cust-e2e-001"


@pytest.fixture()
def settings():
    return Settings(
        api_url="http://testserver",
        storage_path=None,
        sync_delay=0,
        auth_wishlist_delay=0,
        guest_cart_delay=0,
        guest_wishlist_delay=0,
    )


@pytest.fixture()
def transport():
    return httpx.ASGITransport(app=create_app(lifespan=None))


def test_guest_cart_and_wishlist_are_merged_on_sign_in(settings, transport):
    summaries = []

    async def scenario():
        async with StorefrontClient.from_settings(settings, transport=transport) as client:
            client.cart_sync.subscribe(summaries.append)
            await client.cart.add("catalog-item", "P1", "V1", quantity=2, product={"name": "Ryzen 7", "basePrice": 500})
            await client.wishlist.add("prebuilt-item", "PC1", product={"name": "Gaming PC"})

            client.sign_in(CUSTOMER, issue_token(CUSTOMER))
            await client.scheduler.drain()
            return client.cart.state, client.wishlist.state, client.cart_sync.local.load()

    cart_state, wishlist_state, leftover = asyncio.run(scenario())

    assert [summary.status for summary in summaries] == [SyncStatus.COMPLETED]
    assert leftover == []
    assert cart_state.find(item_key("catalog-item", "P1", "V1")).quantity == 2
    assert [item.product_ref for item in wishlist_state.items] == ["PC1"]

    server_cart = cart_for_customer(CUSTOMER)
    assert [(item.product_ref, item.variant_ref, item.quantity) for item in server_cart.items] == [("P1", "V1", 2)]
    assert server_cart.items[0].unit_price == 500
    assert len(wishlist_for_customer(CUSTOMER).items) == 1


def test_authenticated_changes_reach_the_server(settings, transport):
    async def scenario():
        async with StorefrontClient.from_settings(settings, transport=transport) as client:
            client.sign_in(CUSTOMER, issue_token(CUSTOMER))
            await client.scheduler.drain()
            await client.cart.add("catalog-item", "P1", quantity=3, product={"basePrice": 20})
            await client.cart.update_quantity("catalog-item", "P1", None, 5)
            await client.cart.add("prebuilt-item", "PC1")
            await client.cart.remove("prebuilt-item", "PC1")
            return client.cart.totals

    assert asyncio.run(scenario()) == (5, 100.0)
    (line,) = cart_for_customer(CUSTOMER).items
    assert line.quantity == 5


def test_resubmitted_merge_does_not_double(settings, transport):
    record = CartRecord(item_kind="catalog-item", product_ref="P1", quantity=2, unit_price=10)

    async def scenario():
        http = build_client(settings.api_url, 5.0, lambda: issue_token(CUSTOMER), transport=transport)
        async with http:
            gateway = HttpCartGateway(http)
            await gateway.merge([record], "sess-e2e")
            return await gateway.merge([record], "sess-e2e")

    result = asyncio.run(scenario())
    assert [outcome.status for outcome in result.outcomes] == ["synced"]
    assert result.snapshot.items[0].quantity == 2


def test_missing_token_maps_to_unauthorized(settings, transport):
    async def scenario():
        http = build_client(settings.api_url, 5.0, lambda: None, transport=transport)
        async with http:
            with pytest.raises(GatewayError) as exc_info:
                await HttpCartGateway(http).fetch()
            return exc_info.value

    error = asyncio.run(scenario())
    assert error.status == 401
    assert error.reason == "unauthorized"


def test_server_rejection_is_surfaced_as_last_error(settings, transport):
    async def scenario():
        async with StorefrontClient.from_settings(settings, transport=transport) as client:
            client.sign_in(CUSTOMER, issue_token(CUSTOMER))
            await client.scheduler.drain()
            ok = await client.cart.update_quantity("catalog-item", "P404", None, 2)
            return ok, client.cart.state

    ok, state = asyncio.run(scenario())
    assert ok is False
    assert state.last_error
