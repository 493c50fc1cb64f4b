"""Session controller: follows the auth signal and drives both stores.

A sign-in (or a switch to another account) flips the cart and wishlist stores
to authenticated mode and schedules one guest sync per collection. A sign-out
flips them back to guest mode and cancels any sync still waiting to run.
``sync_now`` retries both syncs on demand, for records an earlier run kept.

Background work is scheduled as named tasks with a fixed start delay, so the
guest fetches on start do not compete with the authenticated profile load.
Scheduling a task under a name that is already waiting replaces it, and
closing the controller cancels everything it scheduled.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from storefront.config import Settings
from storefront.state import CartStore, SessionMode, WishlistStore
from storefront.sync import SyncOrchestrator, SyncSummary

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthTransition:
    previous: str | None
    current: str | None

    @property
    def signed_in(self) -> bool:
        return self.current is not None

    @property
    def switched(self) -> bool:
        return self.previous is not None and self.current is not None


class AuthSignal:
    """Current identity and bearer token. Listeners hear identity changes only."""

    def __init__(self) -> None:
        self.identity: str | None = None
        self.token: str | None = None
        self._listeners: list[Callable[[AuthTransition], None]] = []

    @property
    def mode(self) -> SessionMode:
        return SessionMode.AUTHENTICATED if self.identity else SessionMode.GUEST

    def subscribe(self, listener: Callable[[AuthTransition], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, identity: str, token: str) -> None:
        previous = self.identity
        self.identity = str(identity)
        # A refreshed token for the same account is not a transition
        self.token = token
        if previous != self.identity:
            self._emit(AuthTransition(previous=previous, current=self.identity))

    def sign_out(self) -> None:
        previous = self.identity
        self.identity = None
        self.token = None
        if previous is not None:
            self._emit(AuthTransition(previous=previous, current=None))

    def _emit(self, transition: AuthTransition) -> None:
        logger.info("Auth transition", previous=transition.previous, current=transition.current)
        for listener in list(self._listeners):
            try:
                listener(transition)
            except Exception:
                logger.exception("Auth listener failed")


@dataclass
class ScheduledTask:
    name: str
    delay: float
    task: asyncio.Task

    @property
    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> bool:
        return self.task.cancel()


class TaskScheduler:
    """Named, delayed, cancellable tasks on the running event loop."""

    def __init__(self) -> None:
        self._tasks: dict[str, ScheduledTask] = {}
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> list[str]:
        return [name for name, scheduled in self._tasks.items() if not scheduled.done]

    def schedule(self, name: str, delay: float, factory: Callable[[], Awaitable]) -> ScheduledTask:
        self.cancel(name)
        task = asyncio.get_running_loop().create_task(self._delayed(delay, factory), name=name)
        scheduled = ScheduledTask(name=name, delay=delay, task=task)
        self._tasks[name] = scheduled
        task.add_done_callback(lambda finished: self._finished(name, finished))
        logger.debug("Task scheduled", task=name, delay=delay)
        return scheduled

    async def _delayed(self, delay: float, factory: Callable[[], Awaitable]):
        if delay > 0:
            await asyncio.sleep(delay)
        self._running.add(asyncio.current_task())
        return await factory()

    def _finished(self, name: str, task: asyncio.Task) -> None:
        self._running.discard(task)
        scheduled = self._tasks.get(name)
        if scheduled is not None and scheduled.task is task:
            del self._tasks[name]
        if task.cancelled():
            logger.debug("Task cancelled", task=name)
        elif task.exception() is not None:
            logger.error("Scheduled task failed", task=name, error=str(task.exception()))

    def cancel(self, name: str) -> bool:
        scheduled = self._tasks.pop(name, None)
        if scheduled is None:
            return False
        return scheduled.cancel()

    def cancel_waiting(self, name: str) -> bool:
        """Cancel the task only if its delay has not elapsed yet."""
        scheduled = self._tasks.get(name)
        if scheduled is None or scheduled.task in self._running:
            return False
        return self.cancel(name)

    def cancel_all(self) -> None:
        for name in list(self._tasks):
            self.cancel(name)

    async def drain(self) -> None:
        """Wait until every scheduled task, including ones scheduled meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*(scheduled.task for scheduled in list(self._tasks.values())), return_exceptions=True)


class SessionController:
    CART_REFRESH = "cart:refresh"
    WISHLIST_REFRESH = "wishlist:refresh"
    CART_SYNC = "cart:sync"
    WISHLIST_SYNC = "wishlist:sync"

    def __init__(
        self,
        auth: AuthSignal,
        cart: CartStore,
        wishlist: WishlistStore,
        cart_sync: SyncOrchestrator,
        wishlist_sync: SyncOrchestrator,
        settings: Settings,
        scheduler: TaskScheduler | None = None,
    ) -> None:
        self.auth = auth
        self.cart = cart
        self.wishlist = wishlist
        self.cart_sync = cart_sync
        self.wishlist_sync = wishlist_sync
        self.settings = settings
        self.scheduler = scheduler or TaskScheduler()
        self._unsubscribe: Callable[[], None] | None = None

    def start(self) -> None:
        """Subscribe to the auth signal and schedule the initial fetches.

        Must be called from inside a running event loop.
        """
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.auth.subscribe(self._on_transition)
        if self.auth.identity:
            self._on_transition(AuthTransition(previous=None, current=self.auth.identity))
        else:
            self._schedule_guest_refresh()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.scheduler.cancel_all()

    def _on_transition(self, transition: AuthTransition) -> None:
        if transition.signed_in:
            self._authenticated(transition.current)
        else:
            self._signed_out()

    def _authenticated(self, identity: str) -> None:
        if self.cart.mode is SessionMode.AUTHENTICATED:
            # Account switch: drop whatever the previous account left in flight
            self.cart.set_mode(SessionMode.GUEST)
            self.wishlist.set_mode(SessionMode.GUEST)
        self.scheduler.cancel(self.CART_REFRESH)
        self.scheduler.cancel(self.WISHLIST_REFRESH)
        self.cart.set_mode(SessionMode.AUTHENTICATED)
        self.wishlist.set_mode(SessionMode.AUTHENTICATED)

        self.scheduler.schedule(self.CART_SYNC, self.settings.sync_delay, lambda: self.cart_sync.run(identity))
        self.scheduler.schedule(
            self.WISHLIST_SYNC,
            self.settings.auth_wishlist_delay,
            lambda: self.wishlist_sync.run(identity),
        )
        logger.info("Guest sync scheduled", identity=identity)

    async def sync_now(self) -> tuple[SyncSummary, ...]:
        """Run the cart and wishlist syncs for the signed-in identity right away.

        Returns no summaries while signed out or before ``start``.
        """
        identity = self.auth.identity
        if not identity or self.cart.mode is not SessionMode.AUTHENTICATED:
            return ()
        self.scheduler.cancel_waiting(self.CART_SYNC)
        self.scheduler.cancel_waiting(self.WISHLIST_SYNC)
        summaries = await asyncio.gather(self.cart_sync.run(identity), self.wishlist_sync.run(identity))
        return tuple(summaries)

    def _signed_out(self) -> None:
        # A merge already running is left to settle; its lock is released when it does
        self.scheduler.cancel_waiting(self.CART_SYNC)
        self.scheduler.cancel_waiting(self.WISHLIST_SYNC)
        self.cart.set_mode(SessionMode.GUEST)
        self.wishlist.set_mode(SessionMode.GUEST)
        self._schedule_guest_refresh()

    def _schedule_guest_refresh(self) -> None:
        self.scheduler.schedule(self.CART_REFRESH, self.settings.guest_cart_delay, self.cart.refresh)
        self.scheduler.schedule(self.WISHLIST_REFRESH, self.settings.guest_wishlist_delay, self.wishlist.refresh)


__all__ = [
    "AuthSignal",
    "AuthTransition",
    "ScheduledTask",
    "SessionController",
    "SessionMode",
    "TaskScheduler",
]
