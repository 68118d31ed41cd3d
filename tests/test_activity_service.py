from datetime import timedelta

import pytest

from services.activity.ActivityLogService import ActivityLogService
from shared.models.errors import ConfirmationRequiredError, NotFoundError, PermissionDeniedError, StoreError

from conftest import FIXED_NOW


class TickingClock:
    """Advances one minute on every call."""

    def __init__(self):
        self.current = FIXED_NOW

    def __call__(self):
        self.current += timedelta(minutes=1)
        return self.current


@pytest.fixture
def ticking_activity(helper_config, store) -> ActivityLogService:
    return ActivityLogService(helper_config=helper_config, store_client=store, clock=TickingClock())


@pytest.mark.asyncio
async def test_log_writes_entry_with_username(activity, store, jane):
    entry = await activity.log(jane.uid, "View", "Viewed message with ID: JD0001")

    stored = await store.do_read(f"users/u-jane/activityLogs/{entry.key}")
    assert stored == {
        "action": "View",
        "description": "Viewed message with ID: JD0001",
        "timestamp": FIXED_NOW.isoformat(),
        "username": "Jane Doe",
        "userId": "u-jane",
    }


@pytest.mark.asyncio
async def test_unknown_user_is_logged_as_unknown(activity):
    entry = await activity.log("u-ghost", "Login", "User logged in")

    assert entry.username == "Unknown"


@pytest.mark.asyncio
async def test_list_logs_newest_first(ticking_activity, jane, mark):
    await ticking_activity.log(jane.uid, "Login", "User logged in")
    await ticking_activity.log(mark.uid, "Login", "User logged in")
    await ticking_activity.log(jane.uid, "Create", "Created sent message with ID: JD0001")

    own = await ticking_activity.list_logs(jane.uid)
    everyone = await ticking_activity.list_all_logs()

    assert [log.action for log in own] == ["Create", "Login"]
    assert [(log.user_id, log.action) for log in everyone] == [
        ("u-jane", "Create"),
        ("u-mark", "Login"),
        ("u-jane", "Login"),
    ]
    assert everyone[1].username == "Mark Reyes"


@pytest.mark.asyncio
async def test_numeric_timestamps_are_ordered_with_iso_ones(activity, store, jane):
    await store.do_update("users/u-jane/activityLogs", {
        "-a": {"action": "Login", "description": "legacy", "timestamp": 1720483200000},
        "-b": {"action": "Create", "description": "new", "timestamp": FIXED_NOW.isoformat()},
        "-c": {"action": "View", "description": "broken", "timestamp": ""},
    })

    logs = await activity.list_logs(jane.uid)

    assert [log.key for log in logs] == ["-b", "-a", "-c"]
    assert logs[1].timestamp == 1720483200000


@pytest.mark.asyncio
async def test_delete_single_entry(activity, jane):
    entry = await activity.log(jane.uid, "Login", "User logged in")

    await activity.delete_log(jane.uid, entry.key)

    assert await activity.list_logs(jane.uid) == []
    with pytest.raises(NotFoundError):
        await activity.delete_log(jane.uid, entry.key)


@pytest.mark.asyncio
async def test_clear_requires_confirmation(activity, store, jane, mark):
    await activity.log(jane.uid, "Login", "User logged in")
    await activity.log(mark.uid, "Login", "User logged in")

    with pytest.raises(ConfirmationRequiredError):
        await activity.clear_logs(jane.uid)

    await activity.clear_logs(jane.uid, confirm=True)
    assert await activity.list_logs(jane.uid) == []
    assert len(await activity.list_logs(mark.uid)) == 1

    await activity.clear_logs(confirm=True)
    assert await activity.list_all_logs() == []
    # profiles survive
    assert await store.do_read("users/u-mark/name") == "Mark Reyes"


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [StoreError, PermissionDeniedError])
async def test_try_log_swallows_store_failures(helper_config, store, error):
    class FailingStore(type(store)):
        async def do_push(self, path, value):
            raise error("write rejected")

    failing = FailingStore(helper_config=helper_config)
    await failing.boot()
    service = ActivityLogService(helper_config=helper_config, store_client=failing)

    assert await service.try_log("u-jane", "Login", "User logged in") is None
    with pytest.raises(error):
        await service.log("u-jane", "Login", "User logged in")


@pytest.mark.asyncio
async def test_session_events_are_logged(activity, auth, store):
    activity.attach(auth)
    session = await auth.do_sign_up("pedro@example.com", "secret123")
    await auth.do_sign_out(session)
    activity.detach()
    await auth.do_sign_in("pedro@example.com", "secret123")

    logs = await store.do_read(f"users/{session.uid}/activityLogs")
    assert sorted(entry["action"] for entry in logs.values()) == ["Login", "Logout"]
