import pytest
from pydantic import ValidationError

from shared.models.errors import RecordValidationError
from shared.models.record import (
    FileFormat,
    RadMessageRecord,
    RecordAdapter,
    format_for_filename,
    validate_attachment,
)


class TestAttachments:
    def test_pdf_accepts_pdf_and_rejects_text(self):
        assert validate_attachment("PDF", "memo.pdf") is FileFormat.PDF
        with pytest.raises(RecordValidationError):
            validate_attachment("PDF", "memo.txt")

    @pytest.mark.parametrize(
        "filename, expected",
        [
            ("scan.JPEG", FileFormat.JPEG),
            ("report.docx", FileFormat.MS_WORD),
            ("ledger.csv", FileFormat.EXCEL),
            ("archive.tar.gz", None),
            ("no-extension", None),
        ],
    )
    def test_format_for_filename(self, filename, expected):
        assert format_for_filename(filename) is expected

    def test_unknown_format(self):
        with pytest.raises(RecordValidationError, match="Unsupported file format"):
            validate_attachment("GIF", "cat.gif")


class TestRecordModels:
    def test_union_picks_variant_by_type(self):
        record = RecordAdapter.validate_python(
            {"id": "JD0001", "type": "RAD", "cite": "RAD-2024-07", "dateSent": 1, "sender": "HQ"}
        )

        assert isinstance(record, RadMessageRecord)
        assert record.content_field == "cite"
        assert record.content == "RAD-2024-07"

    def test_record_carries_only_its_own_content_field(self):
        with pytest.raises(ValidationError, match="must not carry"):
            RecordAdapter.validate_python(
                {"id": "JD0001", "type": "LOI", "title": "T", "description": "D", "dateSent": 1}
            )

    def test_content_is_required(self):
        with pytest.raises(ValidationError):
            RecordAdapter.validate_python({"id": "JD0001", "type": "Conference Notice", "agenda": "", "dateSent": 1})

    def test_to_store_uses_camel_case_and_drops_empty(self):
        record = RecordAdapter.validate_python(
            {"id": "JD0001", "type": "STL", "description": "D", "dateSent": 1, "staffName": "Jane", "fileFormat": "PDF"}
        )

        assert record.to_store() == {
            "id": "JD0001",
            "type": "STL",
            "description": "D",
            "dateSent": 1,
            "staffName": "Jane",
            "fileFormat": "PDF",
            "hasAttachment": False,
        }


@pytest.mark.asyncio
async def test_written_record_reads_back_unchanged(record_service, jane):
    created = await record_service.create(
        jane,
        "received",
        {"type": "Conference Notice", "sender": "Regional HQ", "agenda": "Q3 planning", "dateSent": 1720483200000},
    )

    fetched = await record_service.get(jane, jane.uid, "received", created.stored.key)

    for field in ("id", "type", "dateSent", "agenda"):
        assert fetched.record[field] == created.stored.record[field]
    assert fetched.record["id"] == "JD0001"
    assert fetched.record["dateSent"] == 1720483200000
