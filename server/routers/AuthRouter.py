from fastapi import APIRouter, Depends, Request, status

from server.dependencies.auth import get_bearer_token
from server.models.requests import LoginRequest, RegisterRequest
from server.models.responses import MessageResponse, SessionResponse
from shared.models.errors import NotFoundError

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(request: Request, body: RegisterRequest) -> SessionResponse:
    """Create an account with the ``user`` role and sign it in."""
    user_service = request.app.state.user_service
    session, profile = await user_service.register(
        email=body.email,
        password=body.password,
        name=body.name,
        department=body.department,
        phone_number=body.phone_number,
    )
    return SessionResponse(session=session, profile=profile)


@router.post("/login")
async def login(request: Request, body: LoginRequest) -> SessionResponse:
    """Sign in with email and password.

    Returns:
        SessionResponse: The session (carries the ID token for the Authorization header) and the profile.
    """
    user_service = request.app.state.user_service
    session = await user_service.login(body.email, body.password)
    try:
        profile = await user_service.get_profile(session.uid)
    except NotFoundError:
        profile = None
    return SessionResponse(session=session, profile=profile)


@router.post("/logout")
async def logout(request: Request, token: str = Depends(get_bearer_token)) -> MessageResponse:
    await request.app.state.user_service.logout(token)
    return MessageResponse(detail="Signed out.")
