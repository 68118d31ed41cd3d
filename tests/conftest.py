"""
E-Logbook - Test Configuration and Fixtures

Every test runs against the in-process memory engines; the Firebase engines
are exercised separately through httpx.MockTransport.
"""
import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

# Set testing environment before anything reads it
os.environ.setdefault("ROOT_DIR", tempfile.mkdtemp(prefix="elogbook-tests-"))
os.environ["STORE_ENGINE"] = "memory"
os.environ["AUTH_ENGINE"] = "memory"
os.environ["OBJECTS_ENGINE"] = "memory"
os.environ["TIMEZONE"] = "Asia/Manila"

from shared.clients.auth.memory.AuthClientMemory import AuthClientMemory
from shared.clients.objects.memory.ObjectsClientMemory import ObjectsClientMemory
from shared.clients.store.memory.StoreClientMemory import StoreClientMemory
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.models.user import UserProfile
from services.activity.ActivityLogService import ActivityLogService
from services.aggregation.AggregationService import AggregationService
from services.allocator.IdAllocator import IdAllocator
from services.records.RecordService import RecordService
from services.reports.ReportService import ReportService
from services.users.UserService import UserService

# Wednesday 2024-07-10 11:00 in Asia/Manila
FIXED_NOW = datetime(2024, 7, 10, 3, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("elogbook.tests")))


@pytest.fixture
async def store(helper_config) -> AsyncGenerator[StoreClientMemory, None]:
    client = StoreClientMemory(helper_config=helper_config)
    await client.boot()
    yield client
    await client.close()


@pytest.fixture
async def auth(helper_config) -> AsyncGenerator[AuthClientMemory, None]:
    client = AuthClientMemory(helper_config=helper_config)
    await client.boot()
    yield client
    await client.close()


@pytest.fixture
async def objects(helper_config) -> AsyncGenerator[ObjectsClientMemory, None]:
    client = ObjectsClientMemory(helper_config=helper_config)
    await client.boot()
    yield client
    await client.close()


@pytest.fixture
def activity(helper_config, store) -> ActivityLogService:
    return ActivityLogService(helper_config=helper_config, store_client=store, clock=fixed_clock)


@pytest.fixture
def allocator(helper_config, store) -> IdAllocator:
    return IdAllocator(helper_config=helper_config, store_client=store, clock=fixed_clock)


@pytest.fixture
def record_service(helper_config, store, objects, allocator, activity) -> RecordService:
    return RecordService(
        helper_config=helper_config,
        store_client=store,
        objects_client=objects,
        allocator=allocator,
        activity=activity,
        clock=fixed_clock,
    )


@pytest.fixture
def user_service(helper_config, store, auth, objects, activity) -> UserService:
    activity.attach(auth)
    return UserService(
        helper_config=helper_config,
        store_client=store,
        auth_client=auth,
        objects_client=objects,
        activity=activity,
        clock=fixed_clock,
    )


@pytest.fixture
def aggregation_service(helper_config, store) -> AggregationService:
    return AggregationService(helper_config=helper_config, store_client=store, clock=fixed_clock)


@pytest.fixture
def report_service(helper_config) -> ReportService:
    return ReportService(helper_config=helper_config, clock=fixed_clock)


async def make_profile(store, uid: str, name: str | None, email: str, role: str = "user") -> UserProfile:
    """Write a profile straight into the store, bypassing the identity provider."""
    data = {"email": email, "role": role}
    if name:
        data["name"] = name
    await store.do_write(f"users/{uid}", data)
    return UserProfile.from_store(uid, data)


@pytest.fixture
async def jane(store) -> UserProfile:
    return await make_profile(store, "u-jane", "Jane Doe", "jane.doe@example.com")


@pytest.fixture
async def mark(store) -> UserProfile:
    return await make_profile(store, "u-mark", "Mark Reyes", "mark.reyes@example.com")


@pytest.fixture
async def admin(store) -> UserProfile:
    return await make_profile(store, "u-admin", "Ada Admin", "admin@example.com", role="admin")


@pytest.fixture
async def client(helper_config, store, auth, objects) -> AsyncGenerator[AsyncClient, None]:
    """API client wired to the memory engines (the lifespan is bypassed)."""
    from server.api_server import app, init_services

    init_services(app.state, helper_config, store, auth, objects)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.activity_service.detach()
