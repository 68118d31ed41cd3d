from fastapi import APIRouter, Depends, Query, Request

from server.dependencies.auth import get_current_user
from server.models.responses import ActivityResponse, MessageResponse
from shared.models.errors import PermissionDeniedError
from shared.models.user import UserProfile

router = APIRouter(prefix="/activity", tags=["activity"])


def _check_scope(user: UserProfile, all_users: bool, owner_id: str | None = None) -> None:
    if (all_users or (owner_id and owner_id != user.uid)) and not user.is_admin:
        raise PermissionDeniedError("Only administrators can manage other users' activity logs.")


@router.get("")
async def list_activity(
    request: Request,
    all_users: bool = Query(False, alias="all"),
    user: UserProfile = Depends(get_current_user),
) -> ActivityResponse:
    """The caller's activity log, or every user's for admins with ``?all=true``; newest first."""
    _check_scope(user, all_users)
    activity_service = request.app.state.activity_service
    logs = await activity_service.list_all_logs() if all_users else await activity_service.list_logs(user.uid)
    return ActivityResponse(logs=logs, total=len(logs))


@router.delete("/{uid}/{key}")
async def delete_activity(
    request: Request,
    uid: str,
    key: str,
    user: UserProfile = Depends(get_current_user),
) -> MessageResponse:
    _check_scope(user, False, owner_id=uid)
    await request.app.state.activity_service.delete_log(uid, key)
    return MessageResponse(detail=f"Activity log {key} deleted.")


@router.delete("")
async def clear_activity(
    request: Request,
    confirm: bool = Query(False),
    all_users: bool = Query(False, alias="all"),
    user: UserProfile = Depends(get_current_user),
) -> MessageResponse:
    """Clear the caller's activity log, or every user's for admins (requires ``?confirm=true``)."""
    _check_scope(user, all_users)
    activity_service = request.app.state.activity_service
    await activity_service.clear_logs(None if all_users else user.uid, confirm=confirm)
    return MessageResponse(detail="Activity logs cleared.")
