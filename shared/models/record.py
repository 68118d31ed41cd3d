"""Pydantic models for logged correspondence.

Hierarchy:
  RecordBase      : fields every record carries, in the store's camelCase shape.
  <Variant>Record : one subclass per record type, each with its own content field.
  Record          : discriminated union of the variants on ``type``.
  Row             : normalized, filter/sort-ready representation used by reports.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from shared.models.errors import RecordValidationError


class RecordType(str, Enum):
    SUBJECT_TO_LETTER = "STL"
    CONFERENCE_NOTICE = "Conference Notice"
    LETTER_OF_INSTRUCTION = "LOI"
    RAD_MESSAGE = "RAD"
    CIVILIAN_LETTER = "Letter"


# name of the single content field each record type carries
CONTENT_FIELDS: dict[str, str] = {
    RecordType.SUBJECT_TO_LETTER.value: "description",
    RecordType.CIVILIAN_LETTER.value: "description",
    RecordType.CONFERENCE_NOTICE.value: "agenda",
    RecordType.LETTER_OF_INSTRUCTION.value: "title",
    RecordType.RAD_MESSAGE.value: "cite",
}
ALL_CONTENT_FIELDS = frozenset(CONTENT_FIELDS.values())
# long variant names some older clients wrote instead of the tag
TYPE_ALIASES: dict[str, str] = {
    "SubjectToLetter": RecordType.SUBJECT_TO_LETTER.value,
    "ConferenceNotice": RecordType.CONFERENCE_NOTICE.value,
    "LetterOfInstruction": RecordType.LETTER_OF_INSTRUCTION.value,
    "RadMessage": RecordType.RAD_MESSAGE.value,
    "CivilianLetter": RecordType.CIVILIAN_LETTER.value,
}


class Direction(str, Enum):
    SENT = "sent"
    RECEIVED = "received"

    @property
    def collection(self) -> str:
        """Name of the per-user store collection holding records of this direction."""
        return "sentMessages" if self is Direction.SENT else "receivedMessages"

    @property
    def counterpart_field(self) -> str:
        """The externally supplied party: the receiver of sent mail, the sender of received mail."""
        return "receiver" if self is Direction.SENT else "sender"

    @property
    def self_field(self) -> str:
        return "sender" if self is Direction.SENT else "receiver"


class Channel(str, Enum):
    EMAIL = "Email"
    VIBER = "Viber"
    HARDCOPY = "Hardcopy"
    CIGNAL = "Cignal"
    TELEGRAM = "Telegram"
    SMS = "SMS"
    ZIMBRA = "Zimbra"


class FileFormat(str, Enum):
    PDF = "PDF"
    JPEG = "JPEG"
    PNG = "PNG"
    MS_WORD = "MS Word"
    EXCEL = "Excel"


EXTENSION_FORMATS: dict[str, FileFormat] = {
    "pdf": FileFormat.PDF,
    "jpg": FileFormat.JPEG,
    "jpeg": FileFormat.JPEG,
    "png": FileFormat.PNG,
    "doc": FileFormat.MS_WORD,
    "docx": FileFormat.MS_WORD,
    "xls": FileFormat.EXCEL,
    "xlsx": FileFormat.EXCEL,
    "csv": FileFormat.EXCEL,
}

CONTENT_TYPES: dict[FileFormat, str] = {
    FileFormat.PDF: "application/pdf",
    FileFormat.JPEG: "image/jpeg",
    FileFormat.PNG: "image/png",
    FileFormat.MS_WORD: "application/msword",
    FileFormat.EXCEL: "application/vnd.ms-excel",
}


def format_for_filename(filename: str) -> FileFormat | None:
    """Map a file name to its format class by extension, case-insensitively."""
    if not filename or "." not in filename:
        return None
    return EXTENSION_FORMATS.get(filename.rsplit(".", 1)[-1].strip().lower())


def validate_attachment(file_format: FileFormat | str, filename: str) -> FileFormat:
    """Check that the selected format matches the uploaded file's extension.

    Returns:
        FileFormat: The validated format.

    Raises:
        RecordValidationError: If the format is unknown or the extension belongs to another class.
    """
    try:
        selected = FileFormat(file_format)
    except ValueError:
        raise RecordValidationError(f"Unsupported file format '{file_format}'.")
    actual = format_for_filename(filename)
    if actual is not selected:
        raise RecordValidationError(
            f"File '{filename}' does not match the selected format '{selected.value}'."
        )
    return selected


class RecordBase(BaseModel):
    """Fields shared by every record type, aliased to the stored camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    id: str
    sender: str | None = None
    receiver: str | None = None
    channel: Channel | str | None = None
    date_sent: int = Field(alias="dateSent")
    date_received: int | None = Field(default=None, alias="dateReceived")
    staff_name: str | None = Field(default=None, alias="staffName")
    file_format: FileFormat | None = Field(default=None, alias="fileFormat")
    file_url: str | None = Field(default=None, alias="fileUrl")
    filename: str | None = None
    has_attachment: bool = Field(default=False, alias="hasAttachment")
    created_at: int | None = Field(default=None, alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def _single_content_field(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        own = CONTENT_FIELDS.get(data.get("type"))
        extra = [name for name in ALL_CONTENT_FIELDS if name != own and data.get(name)]
        if extra:
            raise ValueError(f"Record of type '{data.get('type')}' must not carry {', '.join(sorted(extra))}.")
        return data

    @model_validator(mode="after")
    def _attachment_matches(self) -> "RecordBase":
        if self.file_format and self.filename:
            validate_attachment(self.file_format, self.filename)
        return self

    @property
    def content_field(self) -> str:
        return CONTENT_FIELDS[self.type]

    @property
    def content(self) -> str:
        return getattr(self, self.content_field)

    def to_store(self) -> dict:
        """Serialize into the stored shape (camelCase keys, no empty values)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class SubjectToLetterRecord(RecordBase):
    type: Literal["STL"] = "STL"
    description: str = Field(min_length=1)


class CivilianLetterRecord(RecordBase):
    type: Literal["Letter"] = "Letter"
    description: str = Field(min_length=1)


class ConferenceNoticeRecord(RecordBase):
    type: Literal["Conference Notice"] = "Conference Notice"
    agenda: str = Field(min_length=1)


class LetterOfInstructionRecord(RecordBase):
    type: Literal["LOI"] = "LOI"
    title: str = Field(min_length=1)


class RadMessageRecord(RecordBase):
    type: Literal["RAD"] = "RAD"
    cite: str = Field(min_length=1)


Record = Annotated[
    Union[
        SubjectToLetterRecord,
        CivilianLetterRecord,
        ConferenceNoticeRecord,
        LetterOfInstructionRecord,
        RadMessageRecord,
    ],
    Field(discriminator="type"),
]
RecordAdapter: TypeAdapter = TypeAdapter(Record)


class Timeframe(str, Enum):
    ALL = "all"
    TODAY = "today"
    THIS_WEEK = "thisWeek"
    THIS_MONTH = "thisMonth"


class DirectionFilter(str, Enum):
    ALL = "all"
    SENT = "sent"
    RECEIVED = "received"


class FilterCriteria(BaseModel):
    """Row filters; every criterion left at its default lets all rows through."""

    model_config = ConfigDict(populate_by_name=True)

    timeframe: Timeframe = Timeframe.ALL
    direction: DirectionFilter = DirectionFilter.ALL
    owner_filter: str | None = Field(default=None, alias="ownerFilter")
    type_filter: str | None = Field(default=None, alias="typeFilter")


class Row(BaseModel):
    """One record as shown in tables and reports."""

    key: str | None = None
    record_id: str
    owner_id: str
    owner_name: str
    direction: Direction
    communication_type: str
    subject: str
    sender: str
    receiver: str
    channel: str
    file_format: str
    file_url: str | None = None
    filename: str | None = None
    has_attachment: bool = False
    staff_name: str | None = None
    date_sent: datetime
    date_received: datetime | None = None

    @field_validator("date_sent", "date_received")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        # naive datetimes are taken as UTC so every row sorts on one timeline
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class TopCounterpart(BaseModel):
    name: str
    count: int


class Attachment(BaseModel):
    """An uploaded file on its way to the object store."""

    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


class StoredRecord(BaseModel):
    """A record as read back from the store, with its location."""

    key: str
    owner_id: str
    direction: Direction
    record: dict[str, Any]


class DashboardStats(BaseModel):
    total_sent: int = 0
    total_received: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    top_senders: list[TopCounterpart] = Field(default_factory=list)
    top_receivers: list[TopCounterpart] = Field(default_factory=list)
    types: list[str] = Field(default_factory=list)
