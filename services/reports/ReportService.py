"""Printable and downloadable message history reports.

Every format renders the same table built by ``build_table``:
  html -> Jinja2 template (print layout)
  pdf  -> ReportLab platypus document
  xlsx -> openpyxl workbook
  csv  -> csv module
"""

import csv
import io
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable
from xml.sax.saxutils import escape

import jinja2
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from pydantic import BaseModel
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from shared.helper.HelperConfig import HelperConfig
from shared.models.record import DirectionFilter, FilterCriteria, Row, Timeframe

templates_path = Path(__file__).parent / "templates"
template_env = jinja2.Environment(loader=jinja2.FileSystemLoader(searchpath=templates_path), autoescape=True)

DATE_FORMAT = "%Y-%m-%d %H:%M"
HEADER_FILL = "1E3A8A"

TIMEFRAME_LABELS = {
    Timeframe.ALL: "All time",
    Timeframe.TODAY: "Today",
    Timeframe.THIS_WEEK: "This week",
    Timeframe.THIS_MONTH: "This month",
}


class ReportFormat(str, Enum):
    HTML = "html"
    PDF = "pdf"
    XLSX = "xlsx"
    CSV = "csv"


MEDIA_TYPES = {
    ReportFormat.HTML: "text/html; charset=utf-8",
    ReportFormat.PDF: "application/pdf",
    ReportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ReportFormat.CSV: "text/csv; charset=utf-8",
}


class ReportTable(BaseModel):
    """Everything a renderer needs; cells are already formatted strings."""

    title: str
    organization: str
    heading: str
    generated_at: str
    scope: str
    filters: list[str]
    columns: list[str]
    rows: list[list[str]]


class RenderedReport(BaseModel):
    content: bytes
    media_type: str
    filename: str


class ReportService:

    def __init__(self, helper_config: HelperConfig, clock: Callable[[], datetime] | None = None) -> None:
        self.logging = helper_config.get_logger()
        self._tz = helper_config.get_timezone()
        self._title = helper_config.get_string_val("REPORT_TITLE", default="Message History Report")
        self._organization = helper_config.get_string_val("REPORT_ORGANIZATION", default="")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    ##########################################
    ################ TABLE ###################
    ##########################################

    def _format_date(self, value: datetime | None) -> str:
        if value is None:
            return "-"
        return value.astimezone(self._tz).strftime(DATE_FORMAT)

    def _heading(self, criteria: FilterCriteria, all_users: bool) -> str:
        if all_users:
            return "All Users Messages History"
        if criteria.direction is DirectionFilter.SENT:
            return "Sent Messages History"
        if criteria.direction is DirectionFilter.RECEIVED:
            return "Received Messages History"
        return "Messages History"

    def _describe_filters(self, criteria: FilterCriteria) -> list[str]:
        filters = [f"Timeframe: {TIMEFRAME_LABELS[criteria.timeframe]}"]
        if criteria.type_filter:
            filters.append(f"Type: {criteria.type_filter}")
        if criteria.owner_filter:
            filters.append(f"User: {criteria.owner_filter}")
        return filters

    def build_table(self, rows: list[Row], criteria: FilterCriteria | None = None, all_users: bool = False) -> ReportTable:
        criteria = criteria or FilterCriteria()
        columns = ["From", "To", "Type", "ID", "Subject", "Date Sent", "Date Received", "Channel", "Format", "Attachment"]
        if all_users:
            columns.insert(0, "User")

        cells = []
        for row in rows:
            line = [
                row.sender,
                row.receiver,
                row.communication_type,
                row.record_id,
                row.subject,
                self._format_date(row.date_sent),
                self._format_date(row.date_received),
                row.channel,
                row.file_format,
                "Yes" if row.has_attachment else "No",
            ]
            if all_users:
                line.insert(0, row.owner_name)
            cells.append(line)

        return ReportTable(
            title=self._title,
            organization=self._organization,
            heading=self._heading(criteria, all_users),
            generated_at=self._clock().astimezone(self._tz).strftime(DATE_FORMAT),
            scope="Aggregated data for all users" if all_users else "",
            filters=self._describe_filters(criteria),
            columns=columns,
            rows=cells,
        )

    ##########################################
    ############### RENDERERS ################
    ##########################################

    def render_html(self, table: ReportTable) -> str:
        template = template_env.get_template("report.html")
        return template.render(report=table)

    def render_pdf(self, table: ReportTable) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=landscape(A4),
            leftMargin=12 * mm,
            rightMargin=12 * mm,
            topMargin=12 * mm,
            bottomMargin=12 * mm,
            title=table.title,
        )
        styles = getSampleStyleSheet()
        cell_style = ParagraphStyle(name="ReportCell", parent=styles["BodyText"], fontSize=7, leading=9)
        header_style = ParagraphStyle(name="ReportHeader", parent=cell_style, textColor=colors.white, fontName="Helvetica-Bold")

        story = []
        if table.organization:
            story.append(Paragraph(escape(table.organization), styles["Title"]))
        story.append(Paragraph(escape(table.heading), styles["Heading2"]))
        story.append(Paragraph(f"Generated on: {table.generated_at}", styles["BodyText"]))
        for line in [table.scope, *table.filters]:
            if line:
                story.append(Paragraph(escape(line), styles["BodyText"]))
        story.append(Spacer(1, 6 * mm))

        if table.rows:
            data = [[Paragraph(column, header_style) for column in table.columns]]
            data.extend([Paragraph(escape(cell), cell_style) for cell in line] for line in table.rows)
            grid = Table(data, repeatRows=1)
            grid.setStyle(TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(f"#{HEADER_FILL}")),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F3F4F6")]),
            ]))
            story.append(grid)
        else:
            story.append(Paragraph("No records match the selected filters.", styles["BodyText"]))

        doc.build(story)
        return buffer.getvalue()

    def render_xlsx(self, table: ReportTable) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Messages"
        sheet.append(table.columns)
        for cell in sheet[1]:
            cell.font = Font(bold=True, color="FFFFFF")
            cell.fill = PatternFill(start_color=HEADER_FILL, end_color=HEADER_FILL, fill_type="solid")
        for line in table.rows:
            sheet.append(line)
        sheet.freeze_panes = "A2"

        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    def render_csv(self, table: ReportTable) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(table.columns)
        writer.writerows(table.rows)
        return buffer.getvalue()

    def export(
        self,
        report_format: ReportFormat | str,
        rows: list[Row],
        criteria: FilterCriteria | None = None,
        all_users: bool = False,
    ) -> RenderedReport:
        """Render rows in the requested format, ready to be sent as a download."""
        report_format = ReportFormat(report_format)
        table = self.build_table(rows, criteria, all_users=all_users)

        if report_format is ReportFormat.HTML:
            content = self.render_html(table).encode("utf-8")
        elif report_format is ReportFormat.PDF:
            content = self.render_pdf(table)
        elif report_format is ReportFormat.XLSX:
            content = self.render_xlsx(table)
        else:
            content = self.render_csv(table).encode("utf-8")

        stamp = self._clock().astimezone(self._tz).strftime("%Y%m%d-%H%M")
        self.logging.info("Rendered %s report with %d row(s).", report_format.value, len(rows))
        return RenderedReport(
            content=content,
            media_type=MEDIA_TYPES[report_format],
            filename=f"message-history-{stamp}.{report_format.value}",
        )
