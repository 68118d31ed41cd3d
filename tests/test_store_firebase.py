import asyncio
import json

import httpx
import pytest

from services.allocator.IdAllocator import IdAllocator
from shared.clients.store.firebase.StoreClientFirebase import StoreClientFirebase
from shared.models.errors import PermissionDeniedError, StoreError

from conftest import fixed_clock

DATABASE_URL = "https://elogbook-test.firebaseio.com"


@pytest.fixture
def firebase_env(monkeypatch):
    monkeypatch.setenv("STORE_FIREBASE_DATABASE_URL", DATABASE_URL)
    monkeypatch.setenv("STORE_FIREBASE_AUTH_TOKEN", "db-secret")
    monkeypatch.setenv("STORE_FIREBASE_TRANSACTION_RETRIES", "3")


def make_store(helper_config, handler) -> StoreClientFirebase:
    client = StoreClientFirebase(helper_config=helper_config)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


@pytest.mark.asyncio
async def test_read_uses_json_path_and_auth(firebase_env, helper_config):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"name": "Jane Doe"})

    store = make_store(helper_config, handler)

    assert await store.do_read("users/u-jane") == {"name": "Jane Doe"}
    assert requests[0].method == "GET"
    assert requests[0].url.path == "/users/u-jane.json"
    assert requests[0].url.params["auth"] == "db-secret"
    await store.close()


@pytest.mark.asyncio
async def test_write_update_and_delete(firebase_env, helper_config):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=None)

    store = make_store(helper_config, handler)

    await store.do_write("users/u-jane/name", "Jane")
    await store.do_update("users", {"u-jane/activityLogs": None})
    await store.do_write("users/u-jane/bio", None)

    assert [request.method for request in requests] == ["PUT", "PATCH", "DELETE"]
    assert json.loads(requests[0].content) == "Jane"
    assert requests[0].url.params["print"] == "silent"
    assert json.loads(requests[1].content) == {"u-jane/activityLogs": None}
    assert requests[2].url.path == "/users/u-jane/bio.json"
    await store.close()


@pytest.mark.asyncio
async def test_push_returns_generated_key(firebase_env, helper_config):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        return httpx.Response(200, json={"name": "-NxYz123"})

    store = make_store(helper_config, handler)

    assert await store.do_push("users/u-jane/sentMessages", {"id": "JD0001"}) == "-NxYz123"
    await store.close()


@pytest.mark.asyncio
async def test_error_statuses_are_mapped(firebase_env, helper_config):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.startswith("/secret"):
            return httpx.Response(401, json={"error": "Permission denied"})
        return httpx.Response(500, text="boom")

    store = make_store(helper_config, handler)

    with pytest.raises(PermissionDeniedError):
        await store.do_read("secret/data")
    with pytest.raises(StoreError):
        await store.do_read("users")
    await store.close()


@pytest.mark.asyncio
async def test_transaction_retries_after_lost_race(firebase_env, helper_config):
    puts = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            assert request.headers["X-Firebase-ETag"] == "true"
            return httpx.Response(200, json=1, headers={"ETag": "etag-1"})
        puts.append((request.headers["if-match"], json.loads(request.content)))
        if request.headers["if-match"] == "etag-1":
            # another session committed in between
            return httpx.Response(412, json=5, headers={"ETag": "etag-5"})
        return httpx.Response(200, json=json.loads(request.content))

    store = make_store(helper_config, handler)

    result = await store.do_transaction("users/u-jane/lastMessageId", lambda current: current + 1)

    assert result.committed
    assert result.value == 6
    assert result.attempts == 2
    assert puts == [("etag-1", 2), ("etag-5", 6)]
    await store.close()


@pytest.mark.asyncio
async def test_transaction_gives_up_after_retries(firebase_env, helper_config):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200 if request.method == "GET" else 412, json=1, headers={"ETag": "etag-1"})

    store = make_store(helper_config, handler)

    with pytest.raises(StoreError, match="did not commit"):
        await store.do_transaction("counter", lambda current: current + 1)
    await store.close()


@pytest.mark.asyncio
async def test_allocator_previews_over_rest(firebase_env, helper_config):
    state = {"users/u-jane/name": "Jane Doe", "users/u-jane/lastMessageId": None}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path[1:-len(".json")]
        if request.method == "GET":
            return httpx.Response(200, content=json.dumps(state.get(path)), headers={"ETag": "etag-0", "Content-Type": "application/json"})
        state[path] = json.loads(request.content)
        return httpx.Response(200, json=state[path])

    store = make_store(helper_config, handler)
    allocator = IdAllocator(helper_config=helper_config, store_client=store, clock=fixed_clock)

    assert await allocator.peek_next_id("u-jane") == "JD0001"
    assert state["users/u-jane/lastMessageId"] == 1
    await store.close()


@pytest.mark.asyncio
async def test_subscription_applies_put_and_patch_events(firebase_env, helper_config):
    async def events():
        yield b'event: put\ndata: {"path": "/", "data": {"-a": {"id": "JD0001"}}}\n\n'
        await asyncio.sleep(0.01)
        yield b'event: keep-alive\ndata: null\n\n'
        yield b'event: patch\ndata: {"path": "/-b", "data": {"id": "JD0002"}}\n\n'
        # keep the stream open until the subscription is cancelled
        await asyncio.Event().wait()

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Accept"] == "text/event-stream"
        return httpx.Response(200, headers={"Content-Type": "text/event-stream"}, content=events())

    store = make_store(helper_config, handler)
    seen = []

    subscription = await store.do_subscribe("users/u-jane/sentMessages", seen.append)
    for _ in range(100):
        if len(seen) >= 2:
            break
        await asyncio.sleep(0.01)
    await subscription.unsubscribe()

    assert seen[0] == {"-a": {"id": "JD0001"}}
    assert seen[1] == {"-a": {"id": "JD0001"}, "-b": {"id": "JD0002"}}
    assert not subscription.active
    await store.close()


@pytest.mark.asyncio
async def test_requests_before_boot_fail(firebase_env, helper_config):
    store = StoreClientFirebase(helper_config=helper_config)

    with pytest.raises(StoreError, match="not booted"):
        await store.do_read("users")
