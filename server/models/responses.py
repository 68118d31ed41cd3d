from pydantic import BaseModel

from shared.clients.auth.models.Session import AuthSession
from shared.models.record import Row
from shared.models.user import ActivityLog, UserProfile


class SessionResponse(BaseModel):
    session: AuthSession
    profile: UserProfile | None = None


class RowsResponse(BaseModel):
    rows: list[Row]
    total: int
    types: list[str]


class ActivityResponse(BaseModel):
    logs: list[ActivityLog]
    total: int


class MessageResponse(BaseModel):
    detail: str


class HealthResponse(BaseModel):
    status: str
    version: str
    clients: dict[str, bool]
