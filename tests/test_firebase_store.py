import asyncio
import json
import time

import httpx
import pytest

from scamwatch.errors import NotFound, StoreUnavailable
from scamwatch.models.report import SearchFilters
from scamwatch.services.search import ReportView
from scamwatch.store.base import approved_only, match_all
from scamwatch.store.firebase import FirebaseReportStore, apply_patch, apply_put, parse_sse

DB = "https://scamwatch-test.firebaseio.com"


def _store(handler, **kwargs):
    return FirebaseReportStore(DB, transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_create_posts_server_timestamps():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"name": "-Nabc123"})

    store = _store(handler)
    rid = await store.create({"phoneNumber": "555", "approved": False})
    await store.close()

    assert rid == "-Nabc123"
    assert seen["method"] == "POST"
    assert seen["path"] == "/reports.json"
    assert seen["body"]["createdAt"] == {".sv": "timestamp"}


@pytest.mark.asyncio
async def test_list_pushes_approved_query_to_server():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"a": {"approved": True, "phoneNumber": "1"}})

    store = _store(handler, auth_token="tok")
    result = await store.list(approved_only)
    await store.close()

    assert seen["params"] == {"auth": "tok", "orderBy": '"approved"', "equalTo": "true"}
    assert list(result) == ["a"]


@pytest.mark.asyncio
async def test_transaction_retries_on_etag_conflict():
    state = {"etag": "v1", "value": {"approved": False, "votes": {"yes": 0, "no": 0, "voters": []}}}
    puts = []

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json=state["value"], headers={"ETag": state["etag"]})
        puts.append(request.headers["if-match"])
        if len(puts) == 1:
            # Someone else voted in between.
            state["value"] = {"approved": False, "votes": {"yes": 1, "no": 0, "voters": ["other"]}}
            state["etag"] = "v2"
            return httpx.Response(412, json=state["value"], headers={"ETag": "v2"})
        body = json.loads(request.content)
        body["updatedAt"] = 1700000000000
        return httpx.Response(200, json=body, headers={"ETag": "v3"})

    def add_vote(current):
        votes = current["votes"]
        return {"votes": {"yes": votes["yes"] + 1, "no": votes["no"], "voters": votes["voters"] + ["me"]}}

    store = _store(handler)
    result = await store.transaction("r1", add_vote)
    await store.close()

    assert puts == ["v1", "v2"]
    assert result["votes"] == {"yes": 2, "no": 0, "voters": ["other", "me"]}


@pytest.mark.asyncio
async def test_transaction_gives_up_after_retries():
    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json={"approved": False}, headers={"ETag": "v1"})
        return httpx.Response(412, json={"approved": False}, headers={"ETag": "v1"})

    store = _store(handler, transaction_retries=2)
    with pytest.raises(StoreUnavailable):
        await store.transaction("r1", lambda current: {"approved": True})
    await store.close()


@pytest.mark.asyncio
async def test_update_missing_record_raises_not_found():
    def handler(request):
        return httpx.Response(200, json=None, headers={"ETag": "null_etag"})

    store = _store(handler)
    with pytest.raises(NotFound):
        await store.update("gone", {"approved": True})
    await store.close()


@pytest.mark.asyncio
async def test_backend_errors_become_store_unavailable():
    def handler(request):
        return httpx.Response(500, text="boom")

    store = _store(handler)
    with pytest.raises(StoreUnavailable):
        await store.get("r1")
    await store.close()


@pytest.mark.asyncio
async def test_transport_errors_become_store_unavailable():
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    store = _store(handler)
    with pytest.raises(StoreUnavailable):
        await store.remove("r1")
    await store.close()


def test_parse_sse_decodes_json_data():
    event, data = parse_sse(['event: put', 'data: {"path": "/", "data": {"a": {"approved": true}}}'])
    assert event == "put"
    assert data == {"path": "/", "data": {"a": {"approved": True}}}

    assert parse_sse(["event: keep-alive", "data: null"]) == ("keep-alive", None)


def test_apply_put_and_patch_update_mirror():
    tree = apply_put({}, "/", {"a": {"approved": False, "votes": {"yes": 0}}})
    tree = apply_put(tree, "/a/approved", True)
    tree = apply_patch(tree, "/a/votes", {"yes": 1, "voters": ["u1"]})
    tree = apply_put(tree, "/b", {"approved": True})
    assert tree == {
        "a": {"approved": True, "votes": {"yes": 1, "voters": ["u1"]}},
        "b": {"approved": True},
    }

    tree = apply_put(tree, "/b", None)
    assert list(tree) == ["a"]


def _event(name, path, data):
    return f"event: {name}\ndata: {json.dumps({'path': path, 'data': data})}\n\n".encode()


class _EventFeed:
    """MockTransport handler: plain GETs return `initial`, streaming GETs replay queued events."""

    def __init__(self, initial=None, stream_status=200):
        self.initial = initial or {}
        self.stream_status = stream_status
        self.events = asyncio.Queue()
        self.connections = 0

    async def _body(self):
        while True:
            chunk = await self.events.get()
            if chunk is None:
                return
            yield chunk

    def __call__(self, request):
        if request.headers.get("accept") != "text/event-stream":
            return httpx.Response(200, json=self.initial)
        self.connections += 1
        if self.stream_status != 200:
            return httpx.Response(self.stream_status, text="Permission denied")
        return httpx.Response(200, content=self._body(), headers={"content-type": "text/event-stream"})


async def _eventually(check, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not check():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_subscription_follows_stream_through_approve_and_delete():
    feed = _EventFeed()
    store = _store(feed)
    view = ReportView(store)
    await view.start()
    sub = view._subscription
    assert view.reports == ()

    pending = {"phoneNumber": "555-1234", "category": "Bank Scam", "approved": False, "createdAt": 1, "updatedAt": 1}
    await feed.events.put(_event("put", "/", {"r1": pending}))
    await feed.events.put(_event("keep-alive", "/", None))
    await _eventually(lambda: feed.events.empty())
    await view.flush()
    assert view.reports == ()

    await feed.events.put(_event("put", "/r1/approved", True))
    await _eventually(lambda: [r.id for r in view.reports] == ["r1"])
    assert view.search(SearchFilters(query="bank"))[0].phone_number == "555-1234"

    await feed.events.put(_event("patch", "/r1", {"name": "Jon"}))
    await _eventually(lambda: view.reports and view.reports[0].name == "Jon")

    await feed.events.put(_event("put", "/r1", None))
    await _eventually(lambda: view.reports == ())

    await view.stop()
    assert sub.task.done()
    assert store._subscriptions == []
    await store.close()


@pytest.mark.asyncio
async def test_subscription_skips_malformed_events():
    feed = _EventFeed()
    store = _store(feed)
    view = ReportView(store, match_all)
    await view.start()

    await feed.events.put(b'event: put\ndata: {"nope": 1}\n\n')
    await feed.events.put(b"event: patch\ndata: \"not an object\"\n\n")
    await feed.events.put(_event("put", "/", {"r2": {"phoneNumber": "1", "category": "IRS Scam", "approved": True}}))
    await _eventually(lambda: [r.id for r in view.reports] == ["r2"])

    assert view.error is None
    assert feed.connections == 1
    await view.stop()
    await store.close()


@pytest.mark.asyncio
async def test_subscription_reconnects_after_stream_ends():
    feed = _EventFeed()
    store = _store(feed, stream_backoff=0.01)
    view = ReportView(store, match_all)
    await view.start()

    await feed.events.put(_event("put", "/", {"r1": {"phoneNumber": "1", "category": "IRS Scam", "approved": True}}))
    await _eventually(lambda: len(view.reports) == 1)
    await feed.events.put(None)
    await _eventually(lambda: feed.connections == 2)

    await feed.events.put(_event("put", "/", {}))
    await _eventually(lambda: view.reports == ())
    assert view.error is None
    await view.stop()
    await store.close()


@pytest.mark.asyncio
async def test_subscription_marked_failed_when_stream_is_refused():
    feed = _EventFeed(initial={"r1": {"phoneNumber": "1", "category": "IRS Scam", "approved": True}}, stream_status=401)
    store = _store(feed, stream_retries=1, stream_backoff=0.01)
    view = ReportView(store)
    await view.start()
    assert len(view.reports) == 1

    await _eventually(lambda: view.error is not None)

    assert "401" in view.error
    assert feed.connections == 2
    with pytest.raises(StoreUnavailable):
        view.search(SearchFilters())
    with pytest.raises(StoreUnavailable):
        view.get("r1")
    await view.stop()
    await store.close()


@pytest.mark.asyncio
async def test_initial_snapshot_is_not_shared_with_stream_mirror():
    record = {"phoneNumber": "1", "category": "IRS Scam", "approved": True}
    feed = _EventFeed(initial={"r1": record})
    store = _store(feed)
    received = []

    async def handler(snapshot):
        received.append(snapshot)

    sub = await store.subscribe(match_all, handler)
    await sub.flush()
    await feed.events.put(_event("put", "/r1/approved", False))
    await _eventually(lambda: len(received) == 2)

    assert received[0]["r1"]["approved"] is True
    assert received[1]["r1"] == {"approved": False}
    await store.close()
