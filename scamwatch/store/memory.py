"""In-process report store with asyncio.Lock-serialized writes and snapshot fan-out."""
import asyncio
import copy
import logging
import time
from typing import Any, Optional

from scamwatch.errors import NotFound
from scamwatch.store.base import (
    Predicate,
    Record,
    ReportStore,
    Snapshot,
    SnapshotHandler,
    Subscription,
    TransactionFn,
    match_all,
)
from scamwatch.utils.ids import generate_report_id

logger = logging.getLogger(__name__)


class InMemoryReportStore(ReportStore):
    """Single-process store. Transactions are atomic under the write lock."""

    name = "memory"

    def __init__(self) -> None:
        self._records: dict[str, Record] = {}
        self._subscriptions: list[Subscription] = []
        self._lock = asyncio.Lock()
        self._last_ts = 0
        self._version = 0

    def _now(self) -> int:
        """Monotonic millisecond timestamp: never repeats, never goes backwards."""
        ms = int(time.time() * 1000)
        self._last_ts = max(ms, self._last_ts + 1)
        return self._last_ts

    def _snapshot(self, predicate: Predicate) -> Snapshot:
        return {
            rid: copy.deepcopy(rec)
            for rid, rec in self._records.items()
            if predicate(rec)
        }

    def _publish(self) -> None:
        for sub in self._subscriptions:
            sub.offer(self._version, self._snapshot(sub.predicate))

    async def create(self, record: Record) -> str:
        async with self._lock:
            report_id = generate_report_id()
            ts = self._now()
            self._records[report_id] = {
                **copy.deepcopy(record),
                "createdAt": ts,
                "updatedAt": ts,
            }
            self._version += 1
        self._publish()
        return report_id

    async def get(self, report_id: str) -> Optional[Record]:
        rec = self._records.get(report_id)
        return copy.deepcopy(rec) if rec is not None else None

    async def list(self, predicate: Predicate = match_all) -> Snapshot:
        return self._snapshot(predicate)

    def _merge(self, report_id: str, fields: dict[str, Any]) -> None:
        rec = self._records.get(report_id)
        if rec is None:
            raise NotFound(report_id)
        rec.update(copy.deepcopy(fields))
        rec["updatedAt"] = self._now()
        self._version += 1

    async def update(self, report_id: str, fields: dict[str, Any]) -> None:
        async with self._lock:
            self._merge(report_id, fields)
        self._publish()

    async def remove(self, report_id: str) -> None:
        async with self._lock:
            existed = self._records.pop(report_id, None) is not None
            if existed:
                self._version += 1
        if existed:
            self._publish()

    async def transaction(self, report_id: str, fn: TransactionFn) -> Record:
        async with self._lock:
            current = self._records.get(report_id)
            if current is None:
                raise NotFound(report_id)
            fields = fn(copy.deepcopy(current))
            if fields:
                self._merge(report_id, fields)
            result = copy.deepcopy(self._records[report_id])
        if fields:
            self._publish()
        return result

    async def subscribe(self, predicate: Predicate, handler: SnapshotHandler) -> Subscription:
        sub = Subscription(self, predicate, handler)
        self._subscriptions.append(sub)
        sub.offer(self._version, self._snapshot(predicate))
        return sub

    async def detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def close(self) -> None:
        for sub in list(self._subscriptions):
            await sub.unsubscribe()
        logger.info("In-memory store closed")
