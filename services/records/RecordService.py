"""Create, read, edit and delete logged correspondence.

Records live in ``users/{uid}/sentMessages`` and ``users/{uid}/receivedMessages``
under store-generated push keys; attachments live in the object store under
``messageFiles/{uid}/``.

Creation order:
  validate -> preview ID -> upload attachment -> push record -> commit counter
  -> activity log -> fresh preview of the next ID
Nothing external is touched until validation has passed.
"""

from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from services.activity.ActivityLogService import ActivityLogService
from services.aggregation.aggregation import to_datetime, to_millis
from services.allocator.IdAllocator import IdAllocator, IdPreview
from shared.clients.objects.ObjectsClientInterface import ObjectsClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import (
    ConfirmationRequiredError,
    NotFoundError,
    PermissionDeniedError,
    RecordValidationError,
    StoreError,
)
from shared.models.record import (
    ALL_CONTENT_FIELDS,
    CONTENT_FIELDS,
    CONTENT_TYPES,
    Attachment,
    Direction,
    FileFormat,
    RecordAdapter,
    StoredRecord,
    format_for_filename,
    validate_attachment,
)
from shared.models.user import UserProfile

FILES_ROOT = "messageFiles"
# stored fields that an edit never changes
PROTECTED_FIELDS = frozenset({"id", "createdAt", "fileUrl", "filename", "hasAttachment"})


class CreatedRecord(BaseModel):
    """Outcome of a successful create.

    Attributes:
        stored:   The record as written, with its push key.
        next_id:  Preview of the owner's next identifier, taken after the commit.
        warnings: Non-fatal problems (temporary ID, failed counter commit).
    """

    stored: StoredRecord
    next_id: IdPreview
    warnings: list[str] = Field(default_factory=list)


def _format_errors(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if not isinstance(part, int))
        message = item.get("msg", "invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)


class RecordService:

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        objects_client: ObjectsClientInterface,
        allocator: IdAllocator,
        activity: ActivityLogService,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._objects = objects_client
        self._allocator = allocator
        self._activity = activity
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._max_upload_bytes = int(helper_config.get_number_val("MAX_UPLOAD_MB", default=10) * 1024 * 1024)
        self._log_views = helper_config.get_bool_val("ACTIVITY_LOG_VIEWS", default=True)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_collection_path(self, owner_id: str, direction: Direction) -> str:
        return self._store.normalize_path("users", owner_id, direction.collection)

    def _get_record_path(self, owner_id: str, direction: Direction, key: str) -> str:
        return self._store.normalize_path("users", owner_id, direction.collection, key)

    def _get_file_path(self, owner_id: str, filename: str) -> str:
        return f"{FILES_ROOT}/{owner_id}/{filename}"

    ##########################################
    ############### VALIDATION ###############
    ##########################################

    def _check_access(self, actor: UserProfile, owner_id: str) -> None:
        if actor.uid != owner_id and not actor.is_admin:
            raise PermissionDeniedError("You can only manage your own records.")

    def _validate(self, data: dict) -> dict:
        """Validate a record in its stored shape and return it normalized.

        Raises:
            RecordValidationError: If a required field is missing or a value is invalid.
        """
        if data.get("type") not in CONTENT_FIELDS:
            raise RecordValidationError(f"Unsupported record type '{data.get('type')}'.")
        try:
            record = RecordAdapter.validate_python(data)
        except ValidationError as e:
            raise RecordValidationError(_format_errors(e))
        return record.to_store()

    def _coerce_dates(self, data: dict) -> None:
        """Store dates as epoch milliseconds whatever form they were submitted in."""
        for name in ("dateSent", "dateReceived"):
            value = data.get(name)
            if value is None or (isinstance(value, int) and not isinstance(value, bool)):
                continue
            parsed = to_datetime(value)
            if parsed is None:
                raise RecordValidationError(f"Field '{name}' is not a valid date: '{value}'.")
            data[name] = to_millis(parsed)

    def _check_attachment(self, attachment: Attachment, file_format: str | None) -> str:
        """Resolve and validate the attachment's format.

        Returns:
            str: The file format to store with the record.
        """
        if attachment.size > self._max_upload_bytes:
            raise RecordValidationError(f"File '{attachment.filename}' exceeds the upload limit of {self._max_upload_bytes // (1024 * 1024)} MB.")
        if not file_format:
            detected = format_for_filename(attachment.filename)
            if detected is None:
                raise RecordValidationError(f"Unsupported file type '{attachment.filename}'.")
            return detected.value
        return validate_attachment(file_format, attachment.filename).value

    ##########################################
    ################ STORAGE #################
    ##########################################

    async def _upload(self, owner_id: str, attachment: Attachment, file_format: str) -> tuple[str, str]:
        stored_name = f"{to_millis(self._clock())}_{attachment.filename}"
        content_type = attachment.content_type or CONTENT_TYPES.get(FileFormat(file_format), "application/octet-stream")
        url = await self._objects.do_upload(self._get_file_path(owner_id, stored_name), attachment.content, content_type)
        return stored_name, url

    async def _discard_file(self, owner_id: str, filename: str | None) -> None:
        """Best-effort removal of an attachment blob."""
        if not filename:
            return
        try:
            await self._objects.do_delete(self._get_file_path(owner_id, filename))
        except (StoreError, PermissionDeniedError) as e:
            self.logging.warning("Failed to delete attachment '%s' of user %s: %s", filename, owner_id, e, color="yellow")

    async def _read_existing(self, owner_id: str, direction: Direction, key: str) -> dict:
        data = await self._store.do_read(self._get_record_path(owner_id, direction, key))
        if not isinstance(data, dict):
            raise NotFoundError(f"Record '{key}' does not exist.")
        return data

    ##########################################
    ################ CORE ####################
    ##########################################

    async def preview_next_id(self, actor: UserProfile, owner_id: str | None = None) -> IdPreview:
        """Identifier the owner's next record will get; nothing is reserved."""
        owner_id = owner_id or actor.uid
        self._check_access(actor, owner_id)
        return await self._allocator.preview(owner_id)

    async def create(
        self,
        actor: UserProfile,
        direction: Direction | str,
        fields: dict[str, Any],
        attachment: Attachment | None = None,
        owner_id: str | None = None,
    ) -> CreatedRecord:
        """Log a new sent or received record.

        ``fields`` uses the stored camelCase keys (``type``, ``receiver``,
        ``dateSent``, the type's content field ...). The identifier is
        allocated here; a client-supplied ``id`` is ignored.

        Raises:
            RecordValidationError: Before any external call, for invalid input.
            PermissionDeniedError: If a non-admin logs a record for someone else.
            StoreError: If the attachment upload or the record write fails.
        """
        direction = Direction(direction)
        owner_id = owner_id or actor.uid
        self._check_access(actor, owner_id)

        now = self._clock()
        draft = {key: value for key, value in fields.items() if key not in PROTECTED_FIELDS and value not in (None, "")}
        if not draft.get(direction.counterpart_field):
            raise RecordValidationError(f"Field '{direction.counterpart_field}' is required.")
        draft.setdefault(direction.self_field, actor.display_name)
        draft.setdefault("staffName", actor.display_name)
        if "dateSent" not in draft:
            raise RecordValidationError("Field 'dateSent' is required.")
        draft["createdAt"] = to_millis(now)
        self._coerce_dates(draft)

        if attachment is not None:
            draft["fileFormat"] = self._check_attachment(attachment, draft.get("fileFormat"))
            draft["filename"] = attachment.filename
        # identifier is not known yet, the placeholder only satisfies validation
        self._validate({**draft, "id": "-"})

        warnings: list[str] = []
        preview = await self._allocator.preview(owner_id)
        if preview.warning:
            warnings.append(preview.warning)

        if attachment is not None:
            stored_name, url = await self._upload(owner_id, attachment, draft["fileFormat"])
            draft.update({"filename": stored_name, "fileUrl": url, "hasAttachment": True})

        data = self._validate({**draft, "id": preview.id})
        try:
            key = await self._store.do_push(self._get_collection_path(owner_id, direction), data)
        except (StoreError, PermissionDeniedError):
            if attachment is not None:
                await self._discard_file(owner_id, data.get("filename"))
            raise
        self.logging.info("Stored %s record %s of user %s.", direction.value, preview.id, owner_id, color="green")

        if not preview.temporary:
            try:
                await self._allocator.commit_allocation(owner_id)
            except (StoreError, PermissionDeniedError) as e:
                self.logging.warning("Failed to advance ID counter of user %s after %s: %s", owner_id, preview.id, e, color="yellow")
                warnings.append(f"Record {preview.id} was saved but the ID counter could not be advanced.")

        await self._activity.try_log(actor.uid, "Create", f"Created {direction.value} message with ID: {preview.id}")
        next_id = await self._allocator.preview(owner_id)

        return CreatedRecord(
            stored=StoredRecord(key=key, owner_id=owner_id, direction=direction, record=data),
            next_id=next_id,
            warnings=warnings,
        )

    async def get(self, actor: UserProfile, owner_id: str, direction: Direction | str, key: str) -> StoredRecord:
        """
        Raises:
            PermissionDeniedError: If a non-admin reads someone else's record.
            NotFoundError: If the record does not exist.
        """
        direction = Direction(direction)
        self._check_access(actor, owner_id)
        data = await self._read_existing(owner_id, direction, key)
        if self._log_views:
            await self._activity.try_log(actor.uid, "View", f"Viewed message with ID: {data.get('id', key)}")
        return StoredRecord(key=key, owner_id=owner_id, direction=direction, record=data)

    async def list_records(
        self,
        actor: UserProfile,
        owner_id: str | None = None,
        direction: Direction | str | None = None,
    ) -> list[StoredRecord]:
        """Return a user's records, newest first (push keys sort chronologically)."""
        owner_id = owner_id or actor.uid
        self._check_access(actor, owner_id)
        directions = [Direction(direction)] if direction else [Direction.SENT, Direction.RECEIVED]

        records: list[StoredRecord] = []
        for current in directions:
            collection = await self._store.do_read(self._get_collection_path(owner_id, current)) or {}
            records.extend(
                StoredRecord(key=key, owner_id=owner_id, direction=current, record=data)
                for key, data in collection.items()
                if isinstance(data, dict)
            )
        return sorted(records, key=lambda stored: stored.key, reverse=True)

    async def update(
        self,
        actor: UserProfile,
        owner_id: str,
        direction: Direction | str,
        key: str,
        fields: dict[str, Any],
        attachment: Attachment | None = None,
    ) -> StoredRecord:
        """Edit a record in place.

        The identifier and ``createdAt`` are never changed. A new attachment
        replaces the old one, whose blob is deleted best-effort afterwards.

        Raises:
            PermissionDeniedError: If a non-admin edits someone else's record.
            NotFoundError: If the record does not exist.
            RecordValidationError: If the edited record is invalid.
            StoreError: If the upload or the write fails.
        """
        direction = Direction(direction)
        self._check_access(actor, owner_id)
        existing = await self._read_existing(owner_id, direction, key)

        merged = dict(existing)
        merged.update({name: value for name, value in fields.items() if name not in PROTECTED_FIELDS and value is not None})
        if merged.get("type") != existing.get("type"):
            own = CONTENT_FIELDS.get(merged.get("type"))
            for name in ALL_CONTENT_FIELDS - {own}:
                merged.pop(name, None)
        if "dateSent" not in merged:
            # legacy records only carry a timestamp
            legacy = to_datetime(existing.get("timestamp")) or to_datetime(existing.get("createdAt")) or self._clock()
            merged["dateSent"] = to_millis(legacy)
        self._coerce_dates(merged)
        # createdAt is never rewritten, legacy values need not validate
        merged.pop("createdAt", None)
        if not merged.get(direction.counterpart_field):
            raise RecordValidationError(f"Field '{direction.counterpart_field}' is required.")

        if attachment is not None:
            merged["fileFormat"] = self._check_attachment(attachment, fields.get("fileFormat"))
            merged["filename"] = attachment.filename
        validated = self._validate(merged)

        old_filename = existing.get("filename") if existing.get("fileUrl") else None
        if attachment is not None:
            stored_name, url = await self._upload(owner_id, attachment, validated["fileFormat"])
            validated.update({"filename": stored_name, "fileUrl": url, "hasAttachment": True})

        changes: dict[str, Any] = {name: value for name, value in validated.items() if name != "createdAt" and existing.get(name) != value}
        for name in ALL_CONTENT_FIELDS:
            if name in existing and name not in validated:
                changes[name] = None
        changes["updatedAt"] = to_millis(self._clock())
        try:
            await self._store.do_update(self._get_record_path(owner_id, direction, key), changes)
        except (StoreError, PermissionDeniedError):
            if attachment is not None:
                await self._discard_file(owner_id, validated.get("filename"))
            raise

        if attachment is not None and old_filename:
            await self._discard_file(owner_id, old_filename)

        await self._activity.try_log(actor.uid, "Edit", f"Edited message with ID: {existing.get('id', key)}")
        updated = {name: value for name, value in {**existing, **changes}.items() if value is not None}
        return StoredRecord(key=key, owner_id=owner_id, direction=direction, record=updated)

    async def delete(
        self,
        actor: UserProfile,
        owner_id: str,
        direction: Direction | str,
        key: str,
        confirm: bool = False,
    ) -> None:
        """Delete a record and, best-effort, its attachment.

        Raises:
            ConfirmationRequiredError: Unless ``confirm`` is set.
            PermissionDeniedError: If a non-admin deletes someone else's record.
            NotFoundError: If the record does not exist.
        """
        direction = Direction(direction)
        if not confirm:
            raise ConfirmationRequiredError("Deleting a record requires confirmation.")
        self._check_access(actor, owner_id)
        existing = await self._read_existing(owner_id, direction, key)

        await self._store.do_delete(self._get_record_path(owner_id, direction, key))
        if existing.get("fileUrl"):
            await self._discard_file(owner_id, existing.get("filename"))
        self.logging.info("Deleted %s record %s of user %s.", direction.value, existing.get("id", key), owner_id)
        await self._activity.try_log(actor.uid, "Delete", f"Deleted message with ID: {existing.get('id', key)}")
