import asyncio
import json

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sse_starlette.sse import EventSourceResponse

from server.dependencies.auth import get_current_user
from server.models.requests import filter_criteria, record_form, to_attachment
from server.models.responses import MessageResponse
from services.allocator.IdAllocator import IdPreview
from services.records.RecordService import CreatedRecord
from shared.models.record import Direction, FilterCriteria, Row, StoredRecord
from shared.models.user import UserProfile

router = APIRouter(prefix="/records", tags=["records"])

# how often an idle stream checks whether the client is still connected
STREAM_POLL_SECONDS = 5.0


@router.get("/next-id")
async def next_id(
    request: Request,
    owner: str | None = Query(None, description="Owner uid (admins only, defaults to the caller)"),
    user: UserProfile = Depends(get_current_user),
) -> IdPreview:
    """Preview the identifier the next record will get. Nothing is reserved."""
    return await request.app.state.record_service.preview_next_id(user, owner)


@router.get("/stream")
async def stream_rows(
    request: Request,
    criteria: FilterCriteria = Depends(filter_criteria),
    all_users: bool = Query(False, alias="all"),
    user: UserProfile = Depends(get_current_user),
) -> EventSourceResponse:
    """Live filtered rows as server-sent events; one ``rows`` event per change.

    The store subscription is released as soon as the client disconnects.
    """
    aggregation_service = request.app.state.aggregation_service
    queue: asyncio.Queue[list[Row]] = asyncio.Queue()

    async def _on_rows(rows: list[Row]) -> None:
        await queue.put(rows)

    subscription = await aggregation_service.subscribe_rows(user, _on_rows, criteria, all_users=all_users)

    async def _gen():
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    rows = await asyncio.wait_for(queue.get(), timeout=STREAM_POLL_SECONDS)
                except asyncio.TimeoutError:
                    continue
                yield {"event": "rows", "data": json.dumps([row.model_dump(mode="json") for row in rows])}
        finally:
            await subscription.unsubscribe()

    return EventSourceResponse(_gen())


@router.post("/{direction}", status_code=status.HTTP_201_CREATED)
async def create_record(
    request: Request,
    direction: Direction,
    fields: dict = Depends(record_form),
    owner: str | None = Form(None, alias="ownerId"),
    file: UploadFile | None = File(None),
    user: UserProfile = Depends(get_current_user),
) -> CreatedRecord:
    """Log a sent or received record (multipart form with an optional attachment).

    Returns the stored record together with a preview of the next identifier.
    """
    attachment = await to_attachment(file)
    return await request.app.state.record_service.create(user, direction, fields, attachment=attachment, owner_id=owner)


@router.get("")
async def list_records(
    request: Request,
    owner: str | None = Query(None),
    direction: Direction | None = Query(None),
    user: UserProfile = Depends(get_current_user),
) -> list[StoredRecord]:
    return await request.app.state.record_service.list_records(user, owner_id=owner, direction=direction)


@router.get("/{owner_id}/{direction}/{key}")
async def get_record(
    request: Request,
    owner_id: str,
    direction: Direction,
    key: str,
    user: UserProfile = Depends(get_current_user),
) -> StoredRecord:
    return await request.app.state.record_service.get(user, owner_id, direction, key)


@router.patch("/{owner_id}/{direction}/{key}")
async def update_record(
    request: Request,
    owner_id: str,
    direction: Direction,
    key: str,
    fields: dict = Depends(record_form),
    file: UploadFile | None = File(None),
    user: UserProfile = Depends(get_current_user),
) -> StoredRecord:
    attachment = await to_attachment(file)
    return await request.app.state.record_service.update(user, owner_id, direction, key, fields, attachment=attachment)


@router.delete("/{owner_id}/{direction}/{key}")
async def delete_record(
    request: Request,
    owner_id: str,
    direction: Direction,
    key: str,
    confirm: bool = Query(False),
    user: UserProfile = Depends(get_current_user),
) -> MessageResponse:
    """Delete a record and its attachment (requires ``?confirm=true``)."""
    await request.app.state.record_service.delete(user, owner_id, direction, key, confirm=confirm)
    return MessageResponse(detail=f"Record {key} deleted.")
