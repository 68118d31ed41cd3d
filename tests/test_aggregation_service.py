import pytest

from shared.models.errors import PermissionDeniedError
from shared.models.record import FilterCriteria

JULY_9 = 1720483200000  # 2024-07-09T00:00:00Z
JUNE_1 = 1717200000000  # 2024-06-01T00:00:00Z


@pytest.fixture
async def logbook(store, jane, mark, admin):
    await store.do_update("users/u-jane", {
        "sentMessages": {
            "-a": {"id": "JD0001", "type": "STL", "description": "Budget", "receiver": "HQ", "dateSent": JUNE_1},
            "-b": {"id": "JD0002", "type": "LOI", "title": "Deployment", "receiver": "HQ", "dateSent": JULY_9},
        },
        "receivedMessages": {
            "-c": {"id": "JD0003", "type": "RAD", "cite": "C-1", "sender": "PAGASA", "dateSent": JULY_9},
            "-d": {"id": "JD0004", "type": "RAD", "cite": "C-2", "sender": "PAGASA", "timestamp": "2024-07-08T00:00:00Z"},
        },
    })
    await store.do_update("users/u-mark", {
        "sentMessages": {
            "-e": {"id": "MR0001", "type": "STL", "description": "Roster", "receiver": "Region 4", "dateSent": JULY_9},
        },
    })


@pytest.mark.asyncio
async def test_user_sees_only_own_rows(aggregation_service, jane, logbook):
    rows = await aggregation_service.get_rows(jane)

    # received rows are collected first, ties keep that order
    assert [row.record_id for row in rows] == ["JD0003", "JD0002", "JD0004", "JD0001"]
    assert {row.owner_id for row in rows} == {"u-jane"}


@pytest.mark.asyncio
async def test_admin_sees_every_user(aggregation_service, admin, jane, logbook):
    rows = await aggregation_service.get_rows(admin, all_users=True)

    assert len(rows) == 5
    assert {row.owner_name for row in rows} == {"Jane Doe", "Mark Reyes"}
    with pytest.raises(PermissionDeniedError):
        await aggregation_service.get_rows(jane, all_users=True)


@pytest.mark.asyncio
async def test_timeframe_and_type_filters(aggregation_service, jane, logbook):
    this_month = await aggregation_service.get_rows(jane, FilterCriteria(timeframe="thisMonth"))
    rad = await aggregation_service.get_rows(jane, FilterCriteria(typeFilter="RAD", direction="received"))

    assert sorted(row.record_id for row in this_month) == ["JD0002", "JD0003", "JD0004"]
    assert [row.record_id for row in rad] == ["JD0003", "JD0004"]


@pytest.mark.asyncio
async def test_dashboard(aggregation_service, admin, logbook):
    stats = await aggregation_service.get_dashboard(admin, all_users=True)

    assert stats.total_sent == 3
    assert stats.total_received == 2
    assert stats.by_type == {"STL": 2, "LOI": 1, "RAD": 2}
    assert [(top.name, top.count) for top in stats.top_senders] == [("PAGASA", 2)]
    assert [(top.name, top.count) for top in stats.top_receivers] == [("HQ", 2), ("Region 4", 1)]


@pytest.mark.asyncio
async def test_subscription_delivers_filtered_rows(aggregation_service, store, jane, logbook):
    deliveries = []

    async def on_rows(rows):
        deliveries.append([row.record_id for row in rows])

    subscription = await aggregation_service.subscribe_rows(jane, on_rows, FilterCriteria(direction="sent"))
    await store.do_write(
        "users/u-jane/sentMessages/-f",
        {"id": "JD0005", "type": "STL", "description": "New", "receiver": "HQ", "dateSent": JULY_9 + 1000},
    )
    await subscription.unsubscribe()
    await store.do_delete("users/u-jane/sentMessages/-f")

    assert deliveries == [["JD0002", "JD0001"], ["JD0005", "JD0002", "JD0001"]]
