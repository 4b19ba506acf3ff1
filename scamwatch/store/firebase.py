"""Firebase Realtime Database store over the REST API (httpx).

Writes use server timestamps, transactions use ETag compare-and-swap, and
subscriptions follow the `text/event-stream` feed of the collection.
"""
import asyncio
import copy
import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from scamwatch.errors import NotFound, StoreUnavailable
from scamwatch.store.base import (
    COLLECTION,
    FieldEquals,
    Predicate,
    Record,
    ReportStore,
    Snapshot,
    SnapshotHandler,
    Subscription,
    TransactionFn,
    match_all,
)

logger = logging.getLogger(__name__)

SERVER_TIMESTAMP = {".sv": "timestamp"}
MAX_STREAM_BACKOFF = 30.0


def apply_put(tree: dict[str, Any], path: str, data: Any) -> dict[str, Any]:
    """Apply a streaming `put` event to the local mirror and return the new tree."""
    parts = [p for p in path.split("/") if p]
    if not parts:
        return data if isinstance(data, dict) else {}
    node = tree
    for key in parts[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            if data is None:
                return tree
            child = {}
            node[key] = child
        node = child
    if data is None:
        node.pop(parts[-1], None)
    else:
        node[parts[-1]] = data
    return tree


def apply_patch(tree: dict[str, Any], path: str, data: dict[str, Any]) -> dict[str, Any]:
    """Apply a streaming `patch` event: a put for each child key."""
    base = path.rstrip("/")
    for key, value in (data or {}).items():
        tree = apply_put(tree, f"{base}/{key}", value)
    return tree


def parse_sse(lines: list[str]) -> tuple[str, Any]:
    """Parse one server-sent event block into (event name, decoded data)."""
    event, data_lines = "", []
    for line in lines:
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].strip())
    raw = "\n".join(data_lines)
    try:
        return event, json.loads(raw) if raw else None
    except json.JSONDecodeError:
        return event, raw


class _StreamSubscription(Subscription):
    task: Optional[asyncio.Task] = None


class FirebaseReportStore(ReportStore):
    name = "firebase"

    def __init__(
        self,
        database_url: str,
        auth_token: str = "",
        timeout: float = 15.0,
        transaction_retries: int = 5,
        stream_retries: int = 5,
        stream_backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not database_url:
            raise ValueError("FIREBASE_DATABASE_URL is required for the firebase store")
        self._base = database_url.rstrip("/")
        self._auth_token = auth_token
        self._retries = transaction_retries
        self._stream_retries = stream_retries
        self._stream_backoff = stream_backoff
        self._transport = transport
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._subscriptions: list[_StreamSubscription] = []
        self._version = 0

    def _url(self, report_id: Optional[str] = None) -> str:
        if report_id is None:
            return f"{self._base}/{COLLECTION}.json"
        return f"{self._base}/{COLLECTION}/{report_id}.json"

    def _params(self, predicate: Predicate = match_all) -> dict[str, str]:
        params: dict[str, str] = {}
        if self._auth_token:
            params["auth"] = self._auth_token
        if isinstance(predicate, FieldEquals):
            params["orderBy"] = json.dumps(predicate.field)
            params["equalTo"] = json.dumps(predicate.value)
        return params

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            r = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise StoreUnavailable(f"{method} {url} failed: {e}") from e
        if r.status_code == 412:
            return r
        if not r.is_success:
            raise StoreUnavailable(f"{method} {url} returned {r.status_code}: {r.text[:200]}")
        return r

    async def create(self, record: Record) -> str:
        body = {**record, "createdAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP}
        r = await self._request("POST", self._url(), params=self._params(), json=body)
        return r.json()["name"]

    async def get(self, report_id: str) -> Optional[Record]:
        r = await self._request("GET", self._url(report_id), params=self._params())
        return r.json()

    async def list(self, predicate: Predicate = match_all) -> Snapshot:
        r = await self._request("GET", self._url(), params=self._params(predicate))
        data = r.json() or {}
        return {rid: rec for rid, rec in data.items() if isinstance(rec, dict) and predicate(rec)}

    async def update(self, report_id: str, fields: dict[str, Any]) -> None:
        # PATCH would silently create a missing record, so go through the CAS path.
        await self.transaction(report_id, lambda _current: fields)

    async def remove(self, report_id: str) -> None:
        await self._request("DELETE", self._url(report_id), params=self._params())

    async def transaction(self, report_id: str, fn: TransactionFn) -> Record:
        """Compare-and-swap on the record's ETag; re-read and retry on 412."""
        url = self._url(report_id)
        r = await self._request("GET", url, params=self._params(), headers={"X-Firebase-ETag": "true"})
        for attempt in range(self._retries + 1):
            current = r.json()
            if current is None:
                raise NotFound(report_id)
            fields = fn(copy.deepcopy(current))
            if not fields:
                return current
            body = {**current, **fields, "updatedAt": SERVER_TIMESTAMP}
            r = await self._request(
                "PUT",
                url,
                params=self._params(),
                headers={"if-match": r.headers.get("ETag", ""), "X-Firebase-ETag": "true"},
                json=body,
            )
            if r.status_code != 412:
                return r.json()
            logger.warning("ETag conflict on %s (attempt %d)", report_id, attempt + 1)
        raise StoreUnavailable(f"Transaction on {report_id} gave up after {self._retries} conflicts")

    async def subscribe(self, predicate: Predicate, handler: SnapshotHandler) -> Subscription:
        sub = _StreamSubscription(self, predicate, handler)
        initial = await self.list(predicate)
        self._version += 1
        sub.offer(self._version, copy.deepcopy(initial))
        self._subscriptions.append(sub)
        sub.task = asyncio.create_task(self._stream(sub))
        return sub

    async def _stream(self, sub: _StreamSubscription) -> None:
        """Follow the event stream, reconnecting with backoff.

        Each connection starts from an empty mirror; the server's first
        `put /` reseeds it. When reconnects run out the subscription is
        marked failed instead of serving a stale working set.
        """
        failures = 0
        while sub.active:
            try:
                async for snapshot in self._follow(sub.predicate):
                    failures = 0
                    self._version += 1
                    sub.offer(self._version, snapshot)
                reason = "stream closed by server"
            except asyncio.CancelledError:
                raise
            except (httpx.HTTPError, StoreUnavailable) as e:
                reason = str(e) or type(e).__name__
            failures += 1
            if failures > self._stream_retries:
                logger.error("Subscription stream gave up after %d attempts: %s", failures, reason)
                sub.fail(f"Subscription stream lost: {reason}")
                return
            delay = min(self._stream_backoff * 2 ** (failures - 1), MAX_STREAM_BACKOFF)
            logger.warning("Subscription stream lost (%s); reconnecting in %.2fs", reason, delay)
            await asyncio.sleep(delay)

    async def _follow(self, predicate: Predicate) -> AsyncIterator[Snapshot]:
        """Yield a filtered snapshot after every put/patch event on one connection."""
        tree: dict[str, Any] = {}
        timeout = httpx.Timeout(self._client.timeout.connect, read=None)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            async with client.stream(
                "GET", self._url(), params=self._params(predicate), headers={"Accept": "text/event-stream"}
            ) as r:
                if not r.is_success:
                    raise StoreUnavailable(f"Subscription stream returned {r.status_code}")
                block: list[str] = []
                async for line in r.aiter_lines():
                    if line:
                        block.append(line)
                        continue
                    if not block:
                        continue
                    event, data = parse_sse(block)
                    block = []
                    if event in ("cancel", "auth_revoked"):
                        raise StoreUnavailable(f"Server ended subscription stream: {event}")
                    if event not in ("put", "patch"):
                        continue
                    try:
                        if event == "put":
                            tree = apply_put(tree, data["path"], data["data"])
                        else:
                            tree = apply_patch(tree, data["path"], data["data"])
                    except (KeyError, TypeError, AttributeError) as e:
                        logger.warning("Ignoring malformed %s event: %r", event, e)
                        continue
                    yield {
                        rid: copy.deepcopy(rec)
                        for rid, rec in tree.items()
                        if isinstance(rec, dict) and predicate(rec)
                    }

    async def detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        task = getattr(subscription, "task", None)
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def close(self) -> None:
        for sub in list(self._subscriptions):
            await sub.unsubscribe()
        await self._client.aclose()
        logger.info("Firebase store closed")
