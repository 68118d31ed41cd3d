import pytest

from shared.clients.store.StoreClientInterface import ABORT_TRANSACTION
from shared.clients.store.tree import get_at, join_path, merge_at, paths_overlap, set_at, split_path
from shared.models.errors import InvalidPathError, StoreError


class TestTree:
    def test_split_and_join(self):
        assert split_path("/users/u-1//sentMessages/") == ["users", "u-1", "sentMessages"]
        assert split_path("") == []
        assert join_path("users", "u-1/activityLogs") == "users/u-1/activityLogs"

    @pytest.mark.parametrize("path", ["users/a.b", "users/$x", "users/#1", "users/[0]"])
    def test_forbidden_characters(self, path):
        with pytest.raises(InvalidPathError):
            split_path(path)

    def test_invalid_path_is_a_value_error(self):
        with pytest.raises(ValueError):
            split_path("users/jane.doe")

    def test_writing_none_deletes_and_prunes(self):
        tree = set_at(None, ["users", "u-1", "name"], "Jane")
        tree = set_at(tree, ["users", "u-2", "name"], "Mark")

        tree = set_at(tree, ["users", "u-1", "name"], None)

        assert tree == {"users": {"u-2": {"name": "Mark"}}}
        assert set_at(tree, ["users"], None) is None

    def test_empty_objects_do_not_exist(self):
        assert set_at({}, ["a"], {"b": {}}) is None

    def test_merge_is_multi_path(self):
        tree = {"users": {"u-1": {"name": "Jane", "activityLogs": {"-a": {"action": "Login"}}}}}

        tree = merge_at(tree, ["users"], {"u-1/activityLogs": None, "u-1/department": "Ops"})

        assert tree == {"users": {"u-1": {"name": "Jane", "department": "Ops"}}}

    def test_get_at_returns_a_copy(self):
        tree = {"a": {"b": 1}}

        value = get_at(tree, ["a"])
        value["b"] = 2

        assert tree == {"a": {"b": 1}}
        assert get_at(tree, ["a", "missing"]) is None
        assert get_at(tree, ["a", "b", "c"]) is None

    def test_paths_overlap(self):
        assert paths_overlap(["users", "u-1"], ["users", "u-1", "sentMessages", "-a"])
        assert paths_overlap(["users"], [])
        assert not paths_overlap(["users", "u-1"], ["users", "u-2"])


@pytest.mark.asyncio
async def test_read_write_update_delete(store):
    await store.do_write("users/u-1", {"name": "Jane", "role": "user"})
    await store.do_update("users/u-1", {"department": "Ops", "role": None})

    assert await store.do_read("users/u-1") == {"name": "Jane", "department": "Ops"}

    await store.do_delete("users/u-1/name")
    await store.do_delete("users/u-1/department")

    assert await store.do_read("users") is None


@pytest.mark.asyncio
async def test_push_keys_sort_in_creation_order(store):
    keys = [await store.do_push("users/u-1/activityLogs", {"n": n}) for n in range(20)]

    assert keys == sorted(keys)
    assert len(set(keys)) == 20
    assert all(len(key) == 20 for key in keys)


@pytest.mark.asyncio
async def test_transaction_commits_and_aborts(store):
    committed = await store.do_transaction("counter", lambda current: (current or 0) + 1)
    aborted = await store.do_transaction("counter", lambda current: ABORT_TRANSACTION)

    assert committed.committed and committed.value == 1
    assert not aborted.committed and aborted.value == 1
    assert await store.do_read("counter") == 1


@pytest.mark.asyncio
async def test_subscription_follows_related_paths(store):
    seen = []
    subscription = await store.do_subscribe("users/u-1/sentMessages", seen.append)

    await store.do_write("users/u-1/sentMessages/-a", {"id": "JD0001"})
    await store.do_write("users/u-2/sentMessages/-b", {"id": "MR0001"})
    await store.do_write("users/u-1", {"name": "Jane"})
    await subscription.unsubscribe()
    await store.do_write("users/u-1/sentMessages/-c", {"id": "JD0002"})

    assert seen == [None, {"-a": {"id": "JD0001"}}, None]
    assert not subscription.active


@pytest.mark.asyncio
async def test_subscription_as_context_manager(store):
    seen = []

    async def on_change(value):
        seen.append(value)

    async with await store.do_subscribe("a", on_change):
        await store.do_write("a/b", 1)
    await store.do_write("a/b", 2)

    assert seen == [None, {"b": 1}]


@pytest.mark.asyncio
async def test_unbooted_store_raises(helper_config):
    from shared.clients.store.memory.StoreClientMemory import StoreClientMemory

    offline = StoreClientMemory(helper_config=helper_config)

    with pytest.raises(StoreError):
        await offline.do_read("users")
    assert (await offline.do_healthcheck()).status_code == 503
