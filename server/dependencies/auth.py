from fastapi import Depends, Header, Request

from shared.models.errors import AuthError, PermissionDeniedError
from shared.models.user import UserProfile


async def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    """Extract the ID token from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthError: 401 if the header is missing or malformed.
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Missing or invalid bearer token.")
    return token.strip()


async def get_current_user(request: Request, token: str = Depends(get_bearer_token)) -> UserProfile:
    """Resolve the caller's profile through the identity provider.

    Args:
        request (Request): The FastAPI request object (provides app.state.user_service).
        token (str): The caller's ID token.

    Raises:
        AuthError: 401 if the token is invalid or the account has no profile.
    """
    user_service = request.app.state.user_service
    return await user_service.get_profile_for_token(token)


async def require_admin(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if not user.is_admin:
        raise PermissionDeniedError("Administrator role required.")
    return user
