"""Sync orchestrator: absorbs guest records into the authoritative store once per sign-in.

Phases::

    IDLE -> DETECTING -> MERGING -> RECONCILING -> IDLE

Only one run is in flight per orchestrator. A run that finds the lock held is
reported as ``skipped`` and issues no gateway calls. The lock is released in
a ``finally`` block, so a failed run can always be retried.

Each guest record is merged individually under a bounded timeout and gets its
own outcome. Synced records are removed from the local record store; failed
ones are kept untouched for a later retry. The guest session id is kept until
every record has synced, so a retry reuses the same merge tokens and the
server does not count a record twice.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import structlog

from storefront.exceptions import GatewayError, StorefrontError
from storefront.gateway.port import MergeOutcome
from storefront.local_store import GuestMarkers, LocalRecordStore
from storefront.state import ReactiveStore
from storefront.utils.logging import log_context

logger = structlog.get_logger(__name__)


class SyncPhase(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    MERGING = "merging"
    RECONCILING = "reconciling"


class SyncStatus(str, Enum):
    COMPLETED = "completed"  # every guest record synced
    PARTIAL = "partial"  # some synced, some retained
    FAILED = "failed"  # nothing synced, everything retained
    EMPTY = "empty"  # no guest records to merge
    SKIPPED = "skipped"  # another run held the lock
    ERROR = "error"  # the run could not complete


@dataclass(frozen=True)
class SyncSummary:
    collection: str
    status: SyncStatus
    identity: str | None = None
    outcomes: tuple[MergeOutcome, ...] = ()
    error: str | None = None

    @property
    def synced(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.synced)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.synced)


class SyncOrchestrator:
    def __init__(
        self,
        collection: str,
        local: LocalRecordStore,
        store: ReactiveStore,
        markers: GuestMarkers,
        *,
        merge_item_timeout: float = 5.0,
        strategy: str = "merge",
    ) -> None:
        self.collection = collection
        self.local = local
        self.store = store
        self.markers = markers
        self.merge_item_timeout = merge_item_timeout
        self.strategy = strategy
        self.phase = SyncPhase.IDLE
        # Single-flight lock; only touched between awaits, so a plain flag suffices
        self._locked = False
        self._listeners: list[Callable[[SyncSummary], None]] = []

    @property
    def locked(self) -> bool:
        return self._locked

    def subscribe(self, listener: Callable[[SyncSummary], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    async def run(self, identity: str) -> SyncSummary:
        """Merge the guest records for ``identity``. Never raises."""
        if self._locked:
            logger.info("Sync already in flight, skipping", collection=self.collection, identity=identity)
            return SyncSummary(collection=self.collection, status=SyncStatus.SKIPPED, identity=identity)

        self._locked = True
        try:
            with log_context(sync=self.collection, identity=identity):
                summary = await self._run(identity)
        except StorefrontError as exc:
            logger.error("Sync aborted", collection=self.collection, identity=identity, error=str(exc))
            summary = self._error(identity, exc)
        except Exception as exc:
            logger.exception("Sync crashed", collection=self.collection, identity=identity)
            summary = self._error(identity, exc)
        finally:
            self._locked = False
            self.phase = SyncPhase.IDLE

        for listener in list(self._listeners):
            try:
                listener(summary)
            except Exception:
                logger.exception("Sync listener failed", collection=self.collection)
        return summary

    def _error(self, identity: str, exc: Exception) -> SyncSummary:
        return SyncSummary(
            collection=self.collection,
            status=SyncStatus.ERROR,
            identity=identity,
            error=str(exc) or type(exc).__name__,
        )

    # -------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------
    def _detect(self, identity: str) -> tuple[list, list]:
        """Return the stored guest records and the ones this identity may merge."""
        self.phase = SyncPhase.DETECTING
        records = self.local.load()
        marker = self.markers.last_synced()
        if marker is None or marker.identity == identity or not records:
            return records, records

        if marker.synced_at is None:
            # Undated marker from an older client: everything stored predates it
            self.markers.record_synced(marker.identity, at=_latest(records))
            candidates = []
        else:
            # Records left behind by another account's sync stay out of this one
            candidates = [record for record in records if record.added_at > marker.synced_at]
        if len(candidates) != len(records):
            logger.warning(
                "Guest records from a previous account excluded",
                collection=self.collection,
                identity=identity,
                previous_identity=marker.identity,
                excluded=len(records) - len(candidates),
            )
        return records, candidates

    async def _merge_one(self, record, session_id: str) -> MergeOutcome:
        try:
            async with asyncio.timeout(self.merge_item_timeout):
                result = await self.store.gateway.merge([record], session_id, self.strategy)
        except TimeoutError:
            return MergeOutcome(key=record.key, status="failed", reason="timeout")
        except GatewayError as exc:
            return MergeOutcome(key=record.key, status="failed", reason=exc.reason)
        outcome = next((o for o in result.outcomes if o.key == record.key), None)
        if outcome is None:
            logger.warning("Merge response missing outcome", collection=self.collection, key=record.key)
            return MergeOutcome(key=record.key, status="failed", reason="malformed")
        return outcome

    async def _merge(self, records: list, session_id: str) -> list[MergeOutcome]:
        self.phase = SyncPhase.MERGING
        if self.strategy == "replace":
            # Replacing empties the server collection first, so send one batch
            try:
                async with asyncio.timeout(self.merge_item_timeout * max(1, len(records))):
                    result = await self.store.gateway.merge(records, session_id, self.strategy)
            except TimeoutError:
                return [MergeOutcome(key=r.key, status="failed", reason="timeout") for r in records]
            except GatewayError as exc:
                return [MergeOutcome(key=r.key, status="failed", reason=exc.reason) for r in records]
            return list(result.outcomes)

        return [await self._merge_one(record, session_id) for record in records]

    async def _run(self, identity: str) -> SyncSummary:
        records, candidates = self._detect(identity)
        if not candidates:
            if not records:
                self.markers.record_synced(identity)
            self.phase = SyncPhase.RECONCILING
            await self.store.refresh()
            logger.debug("No guest records to merge", collection=self.collection, identity=identity)
            return SyncSummary(collection=self.collection, status=SyncStatus.EMPTY, identity=identity)

        session_id = self.markers.session_id()
        outcomes = await self._merge(candidates, session_id)

        self.phase = SyncPhase.RECONCILING
        synced_keys = {outcome.key for outcome in outcomes if outcome.synced}
        if synced_keys:
            self.local.remove_keys(synced_keys)
            self.markers.record_synced(identity, at=_latest(candidates))
        if len(synced_keys) == len(candidates):
            self.markers.rotate_session_id()
        await self.store.refresh()

        if len(synced_keys) == len(candidates):
            status = SyncStatus.COMPLETED
        elif synced_keys:
            status = SyncStatus.PARTIAL
        else:
            status = SyncStatus.FAILED
        summary = SyncSummary(
            collection=self.collection,
            status=status,
            identity=identity,
            outcomes=tuple(outcomes),
        )
        logger.info(
            "Guest records merged",
            collection=self.collection,
            identity=identity,
            status=status.value,
            synced=summary.synced,
            failed=summary.failed,
        )
        return summary


def _latest(records) -> datetime:
    return max(record.added_at for record in records)
