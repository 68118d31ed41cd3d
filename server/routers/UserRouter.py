from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status

from server.dependencies.auth import get_bearer_token, get_current_user, require_admin
from server.models.requests import CreateUserRequest, EmailChangeRequest, PasswordChangeRequest, to_attachment
from server.models.responses import MessageResponse
from shared.models.errors import RecordValidationError
from shared.models.user import AdminProfileChanges, ProfileChanges, UserProfile

router = APIRouter(prefix="/users", tags=["users"])


#### OWN PROFILE ####

@router.get("/me")
async def get_me(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    return user


@router.patch("/me")
async def update_me(
    request: Request,
    body: ProfileChanges,
    user: UserProfile = Depends(get_current_user),
) -> UserProfile:
    return await request.app.state.user_service.update_profile(user, body)


@router.post("/me/picture")
async def upload_picture(
    request: Request,
    file: UploadFile = File(...),
    user: UserProfile = Depends(get_current_user),
) -> UserProfile:
    picture = await to_attachment(file)
    if picture is None:
        raise RecordValidationError("No picture uploaded.")
    return await request.app.state.user_service.upload_picture(user, picture)


@router.post("/me/email")
async def change_email(
    request: Request,
    body: EmailChangeRequest,
    token: str = Depends(get_bearer_token),
    user: UserProfile = Depends(get_current_user),
) -> UserProfile:
    return await request.app.state.user_service.change_email(user, token, body.new_email)


@router.post("/me/password")
async def change_password(
    request: Request,
    body: PasswordChangeRequest,
    token: str = Depends(get_bearer_token),
    user: UserProfile = Depends(get_current_user),
) -> MessageResponse:
    await request.app.state.user_service.change_password(user, token, body.new_password)
    return MessageResponse(detail="Password changed.")


#### ADMINISTRATION ####

@router.get("")
async def list_users(request: Request, admin: UserProfile = Depends(require_admin)) -> list[UserProfile]:
    return await request.app.state.user_service.list_users(admin)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    request: Request,
    body: CreateUserRequest,
    admin: UserProfile = Depends(require_admin),
) -> UserProfile:
    return await request.app.state.user_service.create_user(
        admin,
        email=body.email,
        password=body.password,
        name=body.name,
        role=body.role,
        department=body.department,
        phone_number=body.phone_number,
    )


@router.patch("/{uid}")
async def update_user(
    request: Request,
    uid: str,
    body: AdminProfileChanges,
    admin: UserProfile = Depends(require_admin),
) -> UserProfile:
    return await request.app.state.user_service.admin_update(admin, uid, body)


@router.delete("/{uid}")
async def delete_user(
    request: Request,
    uid: str,
    confirm: bool = Query(False),
    admin: UserProfile = Depends(require_admin),
) -> MessageResponse:
    """Delete a user with all of their records and logs (requires ``?confirm=true``)."""
    await request.app.state.user_service.delete_user(admin, uid, confirm=confirm)
    return MessageResponse(detail=f"User {uid} deleted.")
