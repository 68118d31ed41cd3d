"""FastAPI application entry point for the e-logbook API."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.ClientInterface import ClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.auth.AuthClientInterface import AuthClientInterface
from shared.clients.objects.ObjectsClientInterface import ObjectsClientInterface
from shared.clients.store.StoreClientManager import StoreClientManager
from shared.clients.auth.AuthClientManager import AuthClientManager
from shared.clients.objects.ObjectsClientManager import ObjectsClientManager
from shared.models.errors import ELogbookError
from services.activity.ActivityLogService import ActivityLogService
from services.aggregation.AggregationService import AggregationService
from services.allocator.IdAllocator import IdAllocator
from services.records.RecordService import RecordService
from services.reports.ReportService import ReportService
from services.users.UserService import UserService
from server.models.responses import HealthResponse
from server.routers.ActivityRouter import router as activity_router
from server.routers.AuthRouter import router as auth_router
from server.routers.RecordRouter import router as record_router
from server.routers.ReportRouter import router as report_router
from server.routers.UserRouter import router as user_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


def init_services(
    state,
    helper_config: HelperConfig,
    store_client: StoreClientInterface,
    auth_client: AuthClientInterface,
    objects_client: ObjectsClientInterface,
) -> None:
    """Wire clients and services onto ``app.state`` (booting is the caller's job)."""
    state.helper_config = helper_config
    state.store_client = store_client
    state.auth_client = auth_client
    state.objects_client = objects_client

    state.activity_service = ActivityLogService(helper_config=helper_config, store_client=store_client)
    state.activity_service.attach(auth_client)
    state.allocator = IdAllocator(helper_config=helper_config, store_client=store_client)
    state.record_service = RecordService(
        helper_config=helper_config,
        store_client=store_client,
        objects_client=objects_client,
        allocator=state.allocator,
        activity=state.activity_service,
    )
    state.user_service = UserService(
        helper_config=helper_config,
        store_client=store_client,
        auth_client=auth_client,
        objects_client=objects_client,
        activity=state.activity_service,
    )
    state.aggregation_service = AggregationService(helper_config=helper_config, store_client=store_client)
    state.report_service = ReportService(helper_config=helper_config)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    helper_config = HelperConfig(logger=logging)

    store_client = StoreClientManager(helper_config=helper_config).get_client()
    auth_client = AuthClientManager(helper_config=helper_config).get_client()
    objects_client = ObjectsClientManager(helper_config=helper_config).get_client()
    clients: list[ClientInterface] = [store_client, auth_client, objects_client]

    logging.info("Booting all clients...")
    for client in clients:
        await client.boot()
    logging.info("All clients booted successfully.")

    init_services(app.state, helper_config, store_client, auth_client, objects_client)
    await check_connections(store_client, auth_client, objects_client)

    # while the app is running...
    yield

    # when the app shuts down, close all client connections
    logging.info("Shutting down, closing all clients...")
    app.state.activity_service.detach()
    for client in clients:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="elogbook",
    description=(
        "Electronic logbook for official correspondence. Users log sent and received "
        "records, each stamped with a per-user sequential ID (e.g. JD0007), and browse, "
        "filter and export them as reports. Backed by a realtime document store, an "
        "identity provider and an object store for attachments."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=HelperConfig(logger=logging).get_list_val("CORS_ORIGINS", default=["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(user_router)
app.include_router(record_router)
app.include_router(report_router)
app.include_router(activity_router)


@app.exception_handler(ELogbookError)
async def handle_elogbook_error(request: Request, exc: ELogbookError) -> JSONResponse:
    """Turn every domain failure into a JSON error with its status code."""
    if exc.status_code >= 500:
        logging.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logging.debug("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health", tags=["health"])
async def health(request: Request) -> HealthResponse:
    """Reachability of every backend; ``status`` is "ok" only if all of them answer."""
    clients = {
        "store": request.app.state.store_client,
        "auth": request.app.state.auth_client,
        "objects": request.app.state.objects_client,
    }
    results: dict[str, bool] = {}
    for name, client in clients.items():
        try:
            results[name] = (await client.do_healthcheck()).is_success
        except (ELogbookError, httpx.HTTPError):
            results[name] = False
    return HealthResponse(
        status="ok" if all(results.values()) else "degraded",
        version=app_version,
        clients=results,
    )


async def check_connections(
    store_client: StoreClientInterface,
    auth_client: AuthClientInterface,
    objects_client: ObjectsClientInterface,
) -> None:
    """Check connectivity to all configured backends on startup.

    Identity provider and object store failures are non-fatal (sign-in or
    uploads will fail later, but the server stays up). Store failures are
    fatal: no request can be served without it.

    Raises:
        Exception: If the document store is not reachable.
    """
    for client in [auth_client, objects_client]:
        result: httpx.Response = await client.do_healthcheck()
        if not result.is_success:
            logging.warning(
                "%s client '%s' is not reachable (status %d).",
                client.get_client_type(),
                client.__class__.__name__,
                result.status_code,
            )

    result = await store_client.do_healthcheck()
    if not result.is_success:
        raise Exception(
            f"Store client '{store_client.__class__.__name__}' is not reachable "
            f"(status {result.status_code}). Cannot serve requests."
        )


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting elogbook API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
