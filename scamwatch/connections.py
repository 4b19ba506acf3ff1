"""WebSocket ConnectionManager: one store subscription per live socket."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from scamwatch.models.report import ReportOut
from scamwatch.services.search import reports_from_snapshot
from scamwatch.store.base import Predicate, ReportStore, Snapshot, Subscription

logger = logging.getLogger(__name__)


def snapshot_message(snapshot: Snapshot) -> dict[str, Any]:
    """Newest-first list of reports with derived vote metrics."""
    reports = sorted(reports_from_snapshot(snapshot), key=lambda r: r.created_at, reverse=True)
    return {
        "type": "snapshot",
        "reports": [ReportOut.from_report(r).model_dump(mode="json", by_alias=True) for r in reports],
    }


@dataclass
class ConnectionManager:
    """Tracks live feed sockets and their subscriptions."""

    connections: dict[Any, Subscription] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def connect(self, websocket: Any, store: ReportStore, predicate: Predicate) -> None:
        """Subscribe the socket; its delivery task sends the initial snapshot."""

        async def _push(snapshot: Snapshot) -> None:
            await websocket.send_json(snapshot_message(snapshot))

        sub = await store.subscribe(predicate, _push)
        async with self._lock:
            self.connections[websocket] = sub

    async def disconnect(self, websocket: Any) -> None:
        async with self._lock:
            sub = self.connections.pop(websocket, None)
        if sub is not None:
            await sub.unsubscribe()

    async def close_all(self) -> None:
        async with self._lock:
            subs = list(self.connections.values())
            self.connections.clear()
        for sub in subs:
            await sub.unsubscribe()
        if subs:
            logger.info("Released %d feed subscriptions", len(subs))

    @property
    def count(self) -> int:
        return len(self.connections)


connection_manager = ConnectionManager()
