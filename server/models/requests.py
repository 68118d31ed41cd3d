from fastapi import Form, Query, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from shared.models.record import Attachment, DirectionFilter, FilterCriteria, Timeframe
from shared.models.user import Role


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str
    name: str
    department: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")


class CreateUserRequest(RegisterRequest):
    role: Role = Role.USER


class EmailChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_email: str = Field(alias="newEmail")


class PasswordChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_password: str = Field(alias="newPassword")


def record_form(
    type: str | None = Form(None),
    sender: str | None = Form(None),
    receiver: str | None = Form(None),
    channel: str | None = Form(None),
    date_sent: str | None = Form(None, alias="dateSent"),
    date_received: str | None = Form(None, alias="dateReceived"),
    staff_name: str | None = Form(None, alias="staffName"),
    file_format: str | None = Form(None, alias="fileFormat"),
    description: str | None = Form(None),
    agenda: str | None = Form(None),
    title: str | None = Form(None),
    cite: str | None = Form(None),
) -> dict:
    """Collect the multipart record fields into the stored camelCase shape (unset fields omitted)."""
    fields = {
        "type": type,
        "sender": sender,
        "receiver": receiver,
        "channel": channel,
        "dateSent": date_sent,
        "dateReceived": date_received,
        "staffName": staff_name,
        "fileFormat": file_format,
        "description": description,
        "agenda": agenda,
        "title": title,
        "cite": cite,
    }
    return {name: value for name, value in fields.items() if value is not None}


def filter_criteria(
    timeframe: Timeframe = Query(Timeframe.ALL),
    direction: DirectionFilter = Query(DirectionFilter.ALL),
    owner: str | None = Query(None, description="Owner uid or display name"),
    type: str | None = Query(None, description="Communication type"),
) -> FilterCriteria:
    return FilterCriteria(timeframe=timeframe, direction=direction, owner_filter=owner or None, type_filter=type or None)


async def to_attachment(upload: UploadFile | None) -> Attachment | None:
    """Read an optional multipart upload; an empty file field counts as no file."""
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    return Attachment(filename=upload.filename, content=content, content_type=upload.content_type)
