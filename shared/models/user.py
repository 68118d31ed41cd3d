"""Pydantic models for user accounts and their activity logs."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserProfile(BaseModel):
    """The profile part of ``users/{uid}`` (record collections are loaded separately)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    uid: str
    email: str | None = None
    name: str | None = None
    role: Role = Role.USER
    department: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    profile_picture: str | None = Field(default=None, alias="profilePicture")
    bio: str | None = None
    last_message_id: int | None = Field(default=None, alias="lastMessageId")
    created_at: str | None = Field(default=None, alias="createdAt")
    created_by: str | None = Field(default=None, alias="createdBy")
    updated_at: str | None = Field(default=None, alias="updatedAt")
    updated_by: str | None = Field(default=None, alias="updatedBy")

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.uid

    @classmethod
    def from_store(cls, uid: str, data: dict | None) -> "UserProfile":
        return cls.model_validate({**(data or {}), "uid": uid})

    def to_store(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"uid", "last_message_id"})


class ActivityLog(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str
    user_id: str = Field(alias="userId")
    username: str = "Unknown"
    action: str
    description: str
    # ISO string; older entries hold epoch milliseconds
    timestamp: str | int | float


class ProfileChanges(BaseModel):
    """Profile fields a user may edit on their own account; None leaves a field unchanged."""

    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    department: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    bio: str | None = None

    def to_store(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class AdminProfileChanges(ProfileChanges):
    """Profile fields an administrator may edit on any account."""

    role: Role | None = None

    def to_store(self) -> dict:
        data = super().to_store()
        if self.role is not None:
            data["role"] = Role(self.role).value
        return data
