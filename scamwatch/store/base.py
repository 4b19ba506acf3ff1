"""Report store contract: CRUD, per-record transaction, live snapshot subscriptions."""
import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine, Optional

from scamwatch.errors import NotFound

logger = logging.getLogger(__name__)

Record = dict[str, Any]
Snapshot = dict[str, Record]  # report_id -> record
SnapshotHandler = Callable[[Snapshot], Coroutine[Any, Any, None]]
TransactionFn = Callable[[Record], Optional[dict[str, Any]]]

COLLECTION = "reports"


class FieldEquals:
    """Record predicate `record[field] == value`.

    Backends with an index on `field` can push it down as a server-side query.
    """

    def __init__(self, field: str, value: Any) -> None:
        self.field = field
        self.value = value

    def __call__(self, record: Record) -> bool:
        return record.get(self.field) == self.value

    def __repr__(self) -> str:
        return f"FieldEquals({self.field!r}, {self.value!r})"


Predicate = Callable[[Record], bool]

approved_only = FieldEquals("approved", True)


def match_all(record: Record) -> bool:
    return True


class Subscription:
    """One live query. Delivers full snapshots; never diffs.

    Writers only `offer` snapshots. A per-subscription task calls the handler,
    and a snapshot not yet handled is replaced by a newer one, so a slow
    handler never holds up a write and only ever sees the latest state.
    """

    def __init__(self, store: "ReportStore", predicate: Predicate, handler: SnapshotHandler) -> None:
        self.store = store
        self.predicate = predicate
        self.handler = handler
        self.active = True
        self.error: Optional[str] = None
        self._version = -1
        self._pending: Optional[Snapshot] = None
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._delivery: Optional[asyncio.Task] = None

    def offer(self, version: int, snapshot: Snapshot) -> None:
        """Queue a snapshot unless a newer one was already queued. Never blocks."""
        if not self.active or version <= self._version:
            return
        self._version = version
        self._pending = snapshot
        self._idle.clear()
        self._wakeup.set()
        if self._delivery is None or self._delivery.done():
            self._delivery = asyncio.create_task(self._deliver_loop())

    async def _deliver_loop(self) -> None:
        while self.active:
            await self._wakeup.wait()
            self._wakeup.clear()
            snapshot, self._pending = self._pending, None
            if snapshot is not None:
                try:
                    await self.handler(snapshot)
                except Exception as e:
                    logger.warning("Snapshot handler %s failed: %s", getattr(self.handler, "__name__", self.handler), e)
            if self._pending is None:
                self._idle.set()

    async def flush(self) -> None:
        """Wait until every queued snapshot has been handled."""
        if self.active:
            await self._idle.wait()

    def fail(self, reason: str) -> None:
        """Mark the feed as dead; consumers must stop trusting their working set."""
        self.error = reason

    async def unsubscribe(self) -> None:
        """Release the subscription. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        self._idle.set()
        delivery = self._delivery
        if delivery is not None and not delivery.done() and delivery is not asyncio.current_task():
            delivery.cancel()
            try:
                await delivery
            except asyncio.CancelledError:
                pass
        await self.store.detach(self)


class ReportStore(ABC):
    """Abstract report collection.

    Records are plain dicts in the persisted camelCase shape. The store assigns
    `id`-keys and the `createdAt`/`updatedAt` timestamps.
    """

    name = "abstract"

    @abstractmethod
    async def create(self, record: Record) -> str:
        """Persist a new record and return its assigned id."""

    @abstractmethod
    async def get(self, report_id: str) -> Optional[Record]:
        """Return the latest persisted record, or None if absent."""

    @abstractmethod
    async def list(self, predicate: Predicate = match_all) -> Snapshot:
        """Return every record matching predicate."""

    @abstractmethod
    async def update(self, report_id: str, fields: dict[str, Any]) -> None:
        """Merge fields into an existing record. Raises NotFound if missing."""

    @abstractmethod
    async def remove(self, report_id: str) -> None:
        """Delete a record. No error when it is already gone."""

    @abstractmethod
    async def subscribe(self, predicate: Predicate, handler: SnapshotHandler) -> Subscription:
        """Queue the current matching snapshot now, then again after every change.

        Returns without waiting for the handler; `Subscription.flush` waits.
        """

    @abstractmethod
    async def detach(self, subscription: Subscription) -> None:
        """Drop a subscription's callback. Called by Subscription.unsubscribe."""

    async def transaction(self, report_id: str, fn: TransactionFn) -> Record:
        """Apply fn(latest record) -> fields to update, or None for no write.

        Fallback for stores without conditional writes: a plain read then update.
        Two concurrent transactions on the same record can both read the same
        state, and the later write wins. Stores that can compare-and-swap
        override this.
        """
        current = await self.get(report_id)
        if current is None:
            raise NotFound(report_id)
        fields = fn(copy.deepcopy(current))
        if not fields:
            return current
        await self.update(report_id, fields)
        return {**current, **fields}

    async def close(self) -> None:
        """Release network resources and drop every subscription."""
