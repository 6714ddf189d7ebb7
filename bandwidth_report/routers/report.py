"""Report API endpoints driving the bandwidth usage report.

Provides endpoints for:
- Reading the active view (table, chart series, period label, advisory)
- User actions: view selection, date staging/applying, presets, sorting,
  chart modes and advisory dismissal
- Exporting the active view as CSV and fetching its printable table
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import ValidationError

from bandwidth_report.schemas import (
    ChartTypeRequest,
    DateInputRequest,
    ErrorResponse,
    PresetRequest,
    ReportResponse,
    ReportStateOut,
    SortRequest,
    ViewSelectionRequest,
    ViewTable,
)
from bandwidth_report.services.advisory import EMPTY_EXPORT_ADVISORY
from bandwidth_report.services.presentation import build_chart, build_table, period_label
from bandwidth_report.services.report_state import (
    ApplyDateRange,
    SelectPreset,
    SelectView,
    SetChartType,
    StageDates,
    ToggleMonthlyHighestChart,
    ToggleSort,
)
from bandwidth_report.services.session import (
    ReportNotReadyError,
    ReportSession,
    get_report_session,
)

router = APIRouter(prefix="/api/v1/report", tags=["Report"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid action"},
    503: {"model": ErrorResponse, "description": "Report data is not loaded"},
}


def _ready_session(session: ReportSession = Depends(get_report_session)) -> ReportSession:
    """Dependency that rejects requests while no dataset is loaded."""
    if not session.ready:
        raise HTTPException(
            status_code=503,
            detail="Report data is not loaded yet. Check the report payload file.",
        )
    return session


def _render(session: ReportSession) -> ReportResponse:
    state = session.state
    views = session.views
    return ReportResponse(
        state=ReportStateOut(**state.model_dump(include=set(ReportStateOut.model_fields))),
        period_label=period_label(state, views),
        has_data=session.has_data,
        user_names=[user.display_name for user in views.filtered.users],
        advisory=session.notifier.current,
        table=build_table(state, views),
        chart=build_chart(state, views),
    )


def _dispatch(session: ReportSession, build_action) -> ReportResponse:
    try:
        session.dispatch(build_action())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid action: {e.errors()[0]['msg']}")
    except ReportNotReadyError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _render(session)


@router.get(
    "",
    response_model=ReportResponse,
    summary="Get the active report view",
    responses=_ERRORS,
)
def get_report(session: ReportSession = Depends(_ready_session)) -> ReportResponse:
    """Return the active view with its table, chart series and advisory."""
    return _render(session)


@router.post("/view", response_model=ReportResponse, summary="Select a view", responses=_ERRORS)
def select_view(
    request: ViewSelectionRequest,
    session: ReportSession = Depends(_ready_session),
) -> ReportResponse:
    """Switch between the overview, monthly, quarterly and user detail views."""
    return _dispatch(session, lambda: SelectView(view=request.view, user_name=request.user_name))


@router.post("/dates", response_model=ReportResponse, summary="Stage date inputs", responses=_ERRORS)
def stage_dates(
    request: DateInputRequest,
    session: ReportSession = Depends(_ready_session),
) -> ReportResponse:
    """Change the date inputs without applying them."""
    fields = {name: getattr(request, name) for name in request.model_fields_set}
    return _dispatch(session, lambda: StageDates(**fields))


@router.post("/apply", response_model=ReportResponse, summary="Apply the date range", responses=_ERRORS)
def apply_dates(
    request: DateInputRequest,
    session: ReportSession = Depends(_ready_session),
) -> ReportResponse:
    """Apply the given (or staged) range; an invalid range is discarded silently."""
    fields = {name: getattr(request, name) for name in request.model_fields_set}
    return _dispatch(session, lambda: ApplyDateRange(**fields))


@router.post("/preset", response_model=ReportResponse, summary="Select a range preset", responses=_ERRORS)
def select_preset(
    request: PresetRequest,
    session: ReportSession = Depends(_ready_session),
) -> ReportResponse:
    """Apply a predefined range (week, month, 3 or 6 months) immediately."""
    return _dispatch(session, lambda: SelectPreset(preset=request.preset))


@router.post("/sort", response_model=ReportResponse, summary="Toggle sorting", responses=_ERRORS)
def toggle_sort(
    request: SortRequest,
    session: ReportSession = Depends(_ready_session),
) -> ReportResponse:
    """Cycle a column through ascending, descending and the default order."""
    return _dispatch(session, lambda: ToggleSort(column=request.column))


@router.post("/chart", response_model=ReportResponse, summary="Set the user chart type", responses=_ERRORS)
def set_chart_type(
    request: ChartTypeRequest,
    session: ReportSession = Depends(_ready_session),
) -> ReportResponse:
    """Draw the user detail chart as bars or a line."""
    return _dispatch(session, lambda: SetChartType(chart_type=request.chart_type))


@router.post(
    "/monthly-chart/toggle",
    response_model=ReportResponse,
    summary="Toggle the monthly chart mode",
    responses=_ERRORS,
)
def toggle_monthly_chart(session: ReportSession = Depends(_ready_session)) -> ReportResponse:
    """Switch the monthly chart between total usage and highest consumers."""
    return _dispatch(session, ToggleMonthlyHighestChart)


@router.post(
    "/advisory/dismiss",
    response_model=ReportResponse,
    summary="Dismiss the active advisory",
    responses=_ERRORS,
)
def dismiss_advisory(session: ReportSession = Depends(_ready_session)) -> ReportResponse:
    """Close the active advisory before its timer does."""
    session.dismiss_advisory()
    return _render(session)


@router.get(
    "/export",
    summary="Export the active view as CSV",
    responses={
        **_ERRORS,
        200: {"content": {"text/csv": {}}, "description": "Semicolon-separated CSV"},
        409: {"model": ErrorResponse, "description": "Nothing to export"},
    },
)
def export_report(session: ReportSession = Depends(_ready_session)) -> Response:
    """Download the active view as an Excel-friendly CSV file."""
    result = session.export()
    if result is None:
        raise HTTPException(status_code=409, detail=EMPTY_EXPORT_ADVISORY.text)
    return Response(
        content=result.content.encode("utf-8"),
        media_type=result.media_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(result.filename)}"
        },
    )


@router.get(
    "/print",
    response_model=ViewTable,
    summary="Get the printable table of the active view",
    responses={**_ERRORS, 404: {"model": ErrorResponse, "description": "Nothing to print"}},
)
def print_report(session: ReportSession = Depends(_ready_session)) -> ViewTable:
    """Return the table to print for the active view."""
    table = session.print_table()
    if table is None:
        raise HTTPException(status_code=404, detail="Nothing to print for the selected view.")
    return table
