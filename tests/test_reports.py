import csv
import io
from datetime import datetime, timezone

import pytest
from openpyxl import load_workbook

from services.reports.ReportService import ReportFormat
from shared.models.record import Direction, FilterCriteria, Row


@pytest.fixture
def rows() -> list[Row]:
    return [
        Row(
            key="-b",
            record_id="JD0002",
            owner_id="u-jane",
            owner_name="Jane Doe",
            direction=Direction.RECEIVED,
            communication_type="RAD",
            subject="<b>Typhoon</b> & flood advisory",
            sender="PAGASA",
            receiver="Jane Doe",
            channel="Viber",
            file_format="PDF",
            has_attachment=True,
            date_sent=datetime(2024, 7, 9, 23, 30, tzinfo=timezone.utc),
            date_received=datetime(2024, 7, 10, 1, 0, tzinfo=timezone.utc),
        ),
        Row(
            key="-a",
            record_id="JD0001",
            owner_id="u-jane",
            owner_name="Jane Doe",
            direction=Direction.SENT,
            communication_type="STL",
            subject="Quarterly budget",
            sender="Jane Doe",
            receiver="Regional HQ",
            channel="Email",
            file_format="Unknown",
            date_sent=datetime(2024, 7, 1, 0, 0, tzinfo=timezone.utc),
        ),
    ]


def test_table_uses_local_time_and_headings(report_service, rows):
    table = report_service.build_table(rows, FilterCriteria(direction="received", typeFilter="RAD"))

    assert table.heading == "Received Messages History"
    assert table.filters == ["Timeframe: All time", "Type: RAD"]
    assert table.generated_at == "2024-07-10 11:00"
    assert table.columns[0] == "From"
    # 23:30 UTC is the next morning in Manila
    assert table.rows[0][5] == "2024-07-10 07:30"
    assert table.rows[0][-1] == "Yes"
    assert table.rows[1][6] == "-"


def test_all_users_table_adds_user_column(report_service, rows):
    table = report_service.build_table(rows, all_users=True)

    assert table.heading == "All Users Messages History"
    assert table.columns[0] == "User"
    assert table.rows[0][0] == "Jane Doe"
    assert table.scope == "Aggregated data for all users"


def test_html_report_escapes_content(report_service, rows):
    report = report_service.export("html", rows, FilterCriteria(timeframe="thisWeek"))

    html = report.content.decode("utf-8")
    assert report.media_type.startswith("text/html")
    assert report.filename == "message-history-20240710-1100.html"
    assert "Messages History" in html
    assert "Timeframe: This week" in html
    assert "&lt;b&gt;Typhoon&lt;/b&gt; &amp; flood advisory" in html
    assert "<b>Typhoon</b>" not in html


def test_csv_report(report_service, rows):
    report = report_service.export(ReportFormat.CSV, rows)

    lines = list(csv.reader(io.StringIO(report.content.decode("utf-8"))))
    assert lines[0] == ["From", "To", "Type", "ID", "Subject", "Date Sent", "Date Received", "Channel", "Format", "Attachment"]
    assert [line[3] for line in lines[1:]] == ["JD0002", "JD0001"]
    assert report.filename.endswith(".csv")


def test_pdf_report(report_service, rows):
    report = report_service.export("pdf", rows)

    assert report.content.startswith(b"%PDF")
    assert report.media_type == "application/pdf"


def test_pdf_report_without_rows(report_service):
    assert report_service.export("pdf", []).content.startswith(b"%PDF")


def test_xlsx_report(report_service, rows):
    report = report_service.export("xlsx", rows, all_users=True)

    sheet = load_workbook(io.BytesIO(report.content)).active
    values = list(sheet.values)
    assert sheet.title == "Messages"
    assert values[0][:3] == ("User", "From", "To")
    assert values[1][4] == "JD0002"
    assert sheet["A1"].font.bold
    assert len(values) == 3


def test_unknown_format_is_rejected(report_service, rows):
    with pytest.raises(ValueError):
        report_service.export("docx", rows)
