"""Identity provider models, independent of the backend."""

from pydantic import BaseModel


class AuthSession(BaseModel):
    """
    A signed-in account as returned by an identity provider.

    ``uid`` is the stable unique identifier of the account and is the key of
    the user's document in the store (``users/{uid}``).
    """

    uid: str
    email: str | None = None
    display_name: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None


class SessionEvent(BaseModel):
    """
    Delivered to session listeners on sign-in (``session`` set) and
    sign-out (``session`` is None).
    """

    uid: str
    session: AuthSession | None = None

    @property
    def signed_in(self) -> bool:
        return self.session is not None
