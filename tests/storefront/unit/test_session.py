"""Tests for the auth signal, task scheduler and session controller."""

import asyncio

from storefront.config import Settings
from storefront.gateway import FakeCartGateway, FakeWishlistGateway
from storefront.keys import item_key
from storefront.local_store import GuestMarkers, cart_record_store, wishlist_record_store
from storefront.records import CartRecord
from storefront.session import AuthSignal, AuthTransition, SessionController, TaskScheduler
from storefront.state import CartStore, SessionMode, WishlistStore
from storefront.storage import MemoryStorage
from storefront.sync import SyncOrchestrator, SyncStatus

P1 = item_key("catalog-item", "P1")


class TestAuthSignal:
    def test_sign_in_and_out_emit_transitions(self):
        auth = AuthSignal()
        seen = []
        auth.subscribe(seen.append)

        auth.sign_in("cust-1", "token-1")
        auth.sign_out()

        assert seen == [
            AuthTransition(previous=None, current="cust-1"),
            AuthTransition(previous="cust-1", current=None),
        ]
        assert auth.token is None
        assert auth.mode is SessionMode.GUEST

    def test_token_refresh_is_not_a_transition(self):
        auth = AuthSignal()
        seen = []
        auth.subscribe(seen.append)

        auth.sign_in("cust-1", "token-1")
        auth.sign_in("cust-1", "token-2")

        assert len(seen) == 1
        assert auth.token == "token-2"

    def test_account_switch_is_reported(self):
        auth = AuthSignal()
        seen = []
        auth.subscribe(seen.append)

        auth.sign_in("cust-1", "token-1")
        auth.sign_in("cust-2", "token-2")

        assert seen[-1].switched
        assert auth.mode is SessionMode.AUTHENTICATED

    def test_sign_out_while_guest_is_silent(self):
        auth = AuthSignal()
        seen = []
        auth.subscribe(seen.append)

        auth.sign_out()

        assert seen == []

    def test_failing_listener_does_not_block_others(self):
        auth = AuthSignal()
        seen = []
        auth.subscribe(lambda transition: 1 / 0)
        unsubscribe = auth.subscribe(seen.append)

        auth.sign_in("cust-1", "token-1")
        unsubscribe()
        auth.sign_out()

        assert len(seen) == 1


class TestTaskScheduler:
    def test_rescheduling_a_name_replaces_the_waiting_task(self):
        scheduler = TaskScheduler()
        ran = []

        async def scenario():
            async def job(label):
                ran.append(label)

            scheduler.schedule("job", 0.01, lambda: job("first"))
            scheduler.schedule("job", 0.01, lambda: job("second"))
            assert scheduler.pending == ["job"]
            await scheduler.drain()

        asyncio.run(scenario())
        assert ran == ["second"]
        assert scheduler.pending == []

    def test_cancel_all(self):
        scheduler = TaskScheduler()
        ran = []

        async def scenario():
            async def job():
                ran.append(True)

            scheduler.schedule("a", 0.05, job)
            scheduler.schedule("b", 0.05, job)
            scheduler.cancel_all()
            assert scheduler.pending == []
            await asyncio.sleep(0.1)

        asyncio.run(scenario())
        assert ran == []

    def test_running_task_is_not_cancelled_by_cancel_waiting(self):
        scheduler = TaskScheduler()
        finished = []

        async def scenario():
            async def job():
                await asyncio.sleep(0.05)
                finished.append(True)

            scheduler.schedule("job", 0, job)
            await asyncio.sleep(0.01)
            assert scheduler.cancel_waiting("job") is False
            await scheduler.drain()

        asyncio.run(scenario())
        assert finished == [True]

    def test_failed_task_is_logged_not_raised(self):
        scheduler = TaskScheduler()

        async def scenario():
            async def job():
                raise RuntimeError("boom")

            scheduler.schedule("job", 0, job)
            await scheduler.drain()

        asyncio.run(scenario())
        assert scheduler.pending == []


class Harness:
    def __init__(self, **delays):
        settings = Settings(
            **{
                "sync_delay": 0,
                "auth_wishlist_delay": 0,
                "guest_cart_delay": 0,
                "guest_wishlist_delay": 0,
                **delays,
            }
        )
        self.storage = MemoryStorage()
        self.cart_local = cart_record_store(self.storage)
        self.cart_local.upsert(CartRecord(item_kind="catalog-item", product_ref="P1", quantity=2, unit_price=5))
        wishlist_local = wishlist_record_store(self.storage)
        cart_markers = GuestMarkers(self.storage, "cart")
        wishlist_markers = GuestMarkers(self.storage, "wishlist")

        self.cart_gateway = FakeCartGateway()
        self.wishlist_gateway = FakeWishlistGateway()
        self.cart = CartStore(self.cart_local, self.cart_gateway)
        self.wishlist = WishlistStore(wishlist_local, self.wishlist_gateway)
        self.auth = AuthSignal()
        self.controller = SessionController(
            self.auth,
            self.cart,
            self.wishlist,
            SyncOrchestrator("cart", self.cart_local, self.cart, cart_markers),
            SyncOrchestrator("wishlist", wishlist_local, self.wishlist, wishlist_markers),
            settings,
        )
        self.scheduler = self.controller.scheduler

    def merges(self):
        return len(self.cart_gateway.calls_to("merge"))


class TestSessionController:
    def test_start_as_guest_schedules_local_refreshes(self):
        harness = Harness()

        async def scenario():
            harness.controller.start()
            pending = harness.scheduler.pending
            await harness.scheduler.drain()
            return pending

        pending = asyncio.run(scenario())
        assert sorted(pending) == sorted([SessionController.CART_REFRESH, SessionController.WISHLIST_REFRESH])
        assert harness.cart_gateway.calls == []
        assert harness.cart.state.find(P1).quantity == 2

    def test_sign_in_runs_exactly_one_sync(self):
        harness = Harness()

        async def scenario():
            harness.controller.start()
            harness.auth.sign_in("cust-1", "token-1")
            harness.auth.sign_in("cust-1", "token-2")
            await harness.scheduler.drain()

        asyncio.run(scenario())
        assert harness.merges() == 1
        assert harness.cart.mode is SessionMode.AUTHENTICATED
        assert harness.cart_gateway.lines[P1].quantity == 2
        assert harness.cart.state.find(P1).quantity == 2
        assert harness.cart_local.load() == []

    def test_identity_present_at_start_is_synced(self):
        harness = Harness()
        harness.auth.sign_in("cust-1", "token-1")

        async def scenario():
            harness.controller.start()
            await harness.scheduler.drain()

        asyncio.run(scenario())
        assert harness.merges() == 1
        assert harness.wishlist.mode is SessionMode.AUTHENTICATED

    def test_sign_out_before_sync_starts_cancels_it(self):
        harness = Harness(sync_delay=10, auth_wishlist_delay=10)

        async def scenario():
            harness.controller.start()
            harness.auth.sign_in("cust-1", "token-1")
            harness.auth.sign_out()
            pending = harness.scheduler.pending
            await harness.scheduler.drain()
            return pending

        pending = asyncio.run(scenario())
        assert SessionController.CART_SYNC not in pending
        assert harness.merges() == 0
        assert harness.cart.mode is SessionMode.GUEST
        assert harness.cart.state.find(P1).quantity == 2

    def test_account_switch_schedules_a_fresh_sync(self):
        harness = Harness()
        modes = []
        harness.cart.subscribe(lambda state: modes.append(state.mode))

        async def scenario():
            harness.controller.start()
            harness.auth.sign_in("cust-1", "token-1")
            await harness.scheduler.drain()
            modes.clear()
            harness.auth.sign_in("cust-2", "token-2")
            pending = harness.scheduler.pending
            await harness.scheduler.drain()
            return pending

        pending = asyncio.run(scenario())
        assert SessionController.CART_SYNC in pending
        assert modes[:2] == [SessionMode.GUEST, SessionMode.AUTHENTICATED]
        assert harness.cart.mode is SessionMode.AUTHENTICATED

    def test_close_cancels_pending_work(self):
        harness = Harness(sync_delay=10, auth_wishlist_delay=10)

        async def scenario():
            harness.controller.start()
            harness.auth.sign_in("cust-1", "token-1")
            harness.controller.close()
            pending = harness.scheduler.pending
            await asyncio.sleep(0)
            return pending

        assert asyncio.run(scenario()) == []
        assert harness.cart_gateway.calls == []

        # No longer listening
        harness.auth.sign_out()
        assert harness.cart.mode is SessionMode.AUTHENTICATED

    def test_sync_now_retries_kept_records(self):
        harness = Harness()
        harness.cart_gateway.reject_keys[P1] = "quantity_limit"

        async def scenario():
            harness.controller.start()
            harness.auth.sign_in("cust-1", "token-1")
            await harness.scheduler.drain()
            harness.cart_gateway.reject_keys.clear()
            return await harness.controller.sync_now()

        cart_summary, wishlist_summary = asyncio.run(scenario())
        assert cart_summary.status is SyncStatus.COMPLETED
        assert wishlist_summary.status is SyncStatus.EMPTY
        assert harness.merges() == 2
        assert harness.cart_local.load() == []
        assert harness.cart.state.find(P1).quantity == 2

    def test_sync_now_while_signed_out_does_nothing(self):
        harness = Harness()

        async def scenario():
            harness.controller.start()
            summaries = await harness.controller.sync_now()
            await harness.scheduler.drain()
            return summaries

        assert asyncio.run(scenario()) == ()
        assert harness.merges() == 0
