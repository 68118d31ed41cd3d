import asyncio
from datetime import datetime, timezone

import pytest

from services.allocator.IdAllocator import IdAllocator, derive_prefix, format_id, temporary_id
from shared.clients.store.memory.StoreClientMemory import StoreClientMemory

from conftest import fixed_clock, make_profile


@pytest.mark.parametrize(
    "identifier, expected",
    [
        ("jane.doe@example.com", "JD"),
        ("Jane Doe", "JD"),
        ("Al", "AL"),
        ("", "XX"),
        (None, "XX"),
        ("   ", "XX"),
        ("x", "XX"),
        ("maria_clara-santos", "MC"),
        ("juan@example.com", "JU"),
        ("@example.com", "XX"),
    ],
)
def test_derive_prefix(identifier, expected):
    assert derive_prefix(identifier) == expected


def test_format_id_pads_to_four_digits():
    assert format_id("JD", 7) == "JD0007"
    assert format_id("JD", 12345) == "JD12345"


def test_temporary_id_uses_last_four_millis_digits():
    assert temporary_id(datetime(2024, 7, 10, 3, 0, 1, 234000, tzinfo=timezone.utc)) == "XX1234"


@pytest.mark.asyncio
async def test_fresh_user_previews_first_id_and_creates_counter(allocator, store, jane):
    assert await allocator.peek_next_id(jane.uid) == "JD0001"
    assert await store.do_read(f"users/{jane.uid}/lastMessageId") == 1


@pytest.mark.asyncio
async def test_peek_does_not_reserve(allocator, store, jane):
    first = await allocator.peek_next_id(jane.uid)
    second = await allocator.peek_next_id(jane.uid)

    assert first == second == "JD0001"
    assert await store.do_read(f"users/{jane.uid}/lastMessageId") == 1


@pytest.mark.asyncio
async def test_commit_advances_counter_by_one(allocator, store, jane):
    await allocator.peek_next_id(jane.uid)

    assert await allocator.commit_allocation(jane.uid) == 2
    assert await allocator.peek_next_id(jane.uid) == "JD0002"


@pytest.mark.asyncio
async def test_commit_without_preview_moves_past_first_id(allocator, store, jane):
    assert await allocator.commit_allocation(jane.uid) == 2
    assert await store.do_read(f"users/{jane.uid}/lastMessageId") == 2


@pytest.mark.asyncio
async def test_concurrent_commits_never_lose_an_increment(allocator, store, jane):
    await allocator.peek_next_id(jane.uid)

    results = await asyncio.gather(*(allocator.commit_allocation(jane.uid) for _ in range(50)))

    assert await store.do_read(f"users/{jane.uid}/lastMessageId") == 51
    assert sorted(results) == list(range(2, 52))


@pytest.mark.asyncio
async def test_preview_repairs_invalid_counter(allocator, store, jane):
    await store.do_write(f"users/{jane.uid}/lastMessageId", "abc")

    assert await allocator.peek_next_id(jane.uid) == "JD0001"


@pytest.mark.asyncio
async def test_prefix_falls_back_to_email(allocator, store):
    user = await make_profile(store, "u-anon", None, "pedro.penduko@example.com")

    assert await allocator.peek_next_id(user.uid) == "PP0001"


@pytest.mark.asyncio
async def test_unreachable_store_yields_temporary_id(helper_config):
    offline = StoreClientMemory(helper_config=helper_config)  # never booted
    allocator = IdAllocator(helper_config=helper_config, store_client=offline, clock=fixed_clock)

    preview = await allocator.preview("u-jane")

    assert preview.temporary is True
    assert preview.id == temporary_id(fixed_clock())
    assert preview.id.startswith("XX") and len(preview.id) == 6
    assert preview.counter is None
    assert "temporary ID" in preview.warning
