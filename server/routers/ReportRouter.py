from fastapi import APIRouter, Depends, Query, Request, Response

from server.dependencies.auth import get_current_user
from server.models.requests import filter_criteria
from server.models.responses import RowsResponse
from services.aggregation.aggregation import unique_types
from services.reports.ReportService import ReportFormat
from shared.models.record import DashboardStats, FilterCriteria
from shared.models.user import UserProfile

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/rows")
async def get_rows(
    request: Request,
    criteria: FilterCriteria = Depends(filter_criteria),
    all_users: bool = Query(False, alias="all", description="Every user's records (admins only)"),
    user: UserProfile = Depends(get_current_user),
) -> RowsResponse:
    """Normalized, filtered rows newest first, plus every communication type for filter pickers."""
    aggregation_service = request.app.state.aggregation_service
    all_rows = await aggregation_service.load_rows(user, all_users=all_users)
    rows = aggregation_service.filter(all_rows, criteria)
    return RowsResponse(rows=rows, total=len(rows), types=unique_types(all_rows))


@router.get("/dashboard")
async def get_dashboard(
    request: Request,
    criteria: FilterCriteria = Depends(filter_criteria),
    all_users: bool = Query(False, alias="all"),
    user: UserProfile = Depends(get_current_user),
) -> DashboardStats:
    return await request.app.state.aggregation_service.get_dashboard(user, criteria, all_users=all_users)


@router.get("/export/{report_format}")
async def export_report(
    request: Request,
    report_format: ReportFormat,
    criteria: FilterCriteria = Depends(filter_criteria),
    all_users: bool = Query(False, alias="all"),
    user: UserProfile = Depends(get_current_user),
) -> Response:
    """Download the filtered rows as HTML (printable), PDF, Excel or CSV."""
    rows = await request.app.state.aggregation_service.get_rows(user, criteria, all_users=all_users)
    report = request.app.state.report_service.export(report_format, rows, criteria, all_users=all_users)
    disposition = "inline" if report_format is ReportFormat.HTML else "attachment"
    return Response(
        content=report.content,
        media_type=report.media_type,
        headers={"Content-Disposition": f'{disposition}; filename="{report.filename}"'},
    )
