"""Report state, user actions, and the pure functions that evolve and derive it.

A ``ReportState`` is immutable. ``reduce(state, action)`` returns the next
state and ``derive_views(dataset, state)`` recomputes everything the view
shows from the dataset, so both can be tested without any UI.
"""

import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Union

from pydantic import Field, field_validator, model_validator

from bandwidth_report.schemas import (
    ChartType,
    Dataset,
    DateRange,
    FrozenModel,
    MonthlyAggregate,
    QuarterlyAggregate,
    RangePreset,
    SortDirection,
    SortOrder,
    Totals,
    UserRecord,
    ViewKind,
)
from bandwidth_report.services.aggregation import (
    compute_monthly_aggregates,
    compute_quarterly_aggregates,
    filter_by_date_range,
    sum_totals,
)
from bandwidth_report.services.shamsi import (
    DateLike,
    start_of_shamsi_month,
    start_of_shamsi_months_ago,
    start_of_shamsi_week,
    to_utc_date,
)

logger = logging.getLogger(__name__)

TOTAL_USAGE_COLUMN = "totalUsage"
SORTABLE_COLUMNS = (TOTAL_USAGE_COLUMN,)

_PRESET_STARTS: Dict[RangePreset, Callable[[date], date]] = {
    RangePreset.WEEK: start_of_shamsi_week,
    RangePreset.MONTH: start_of_shamsi_month,
    RangePreset.THREE_MONTHS: lambda today: start_of_shamsi_months_ago(2, today),
    RangePreset.SIX_MONTHS: lambda today: start_of_shamsi_months_ago(5, today),
}


def preset_range(preset: RangePreset, today: Optional[DateLike] = None) -> DateRange:
    """Range a preset stands for: from its Shamsi anchor up to today."""
    today = to_utc_date(today)
    return DateRange(start_date=_PRESET_STARTS[preset](today), end_date=today)


class ReportState(FrozenModel):
    """What the user is looking at; never mutated in place."""

    view: ViewKind = ViewKind.OVERVIEW
    user_name: Optional[str] = None
    applied_range: Optional[DateRange] = None
    display_start: Optional[date] = None
    display_end: Optional[date] = None
    preset: RangePreset = RangePreset.MONTH
    sort_order: SortOrder = Field(default_factory=SortOrder)
    chart_type: ChartType = ChartType.BAR
    show_monthly_highest: bool = False

    @property
    def has_pending_dates(self) -> bool:
        if self.applied_range is None:
            return self.display_start is not None or self.display_end is not None
        return (self.display_start, self.display_end) != (
            self.applied_range.start_date,
            self.applied_range.end_date,
        )


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class SelectView(FrozenModel):
    """Switch to the overview, an aggregate report, or one user's detail."""

    view: ViewKind
    user_name: Optional[str] = None

    @model_validator(mode="after")
    def _user_view_needs_name(self):
        if self.view == ViewKind.USER and not self.user_name:
            raise ValueError("Selecting the user view requires a user name")
        return self


class StageDates(FrozenModel):
    """Edit the date inputs without applying them. Omitted fields stay as they are."""

    start: Optional[date] = None
    end: Optional[date] = None


class ApplyDateRange(FrozenModel):
    """Apply the given bounds, or the staged ones for bounds left out."""

    start: Optional[date] = None
    end: Optional[date] = None


class SelectPreset(FrozenModel):
    preset: RangePreset


class ToggleSort(FrozenModel):
    column: str

    @field_validator("column")
    @classmethod
    def _sortable(cls, column: str) -> str:
        if column not in SORTABLE_COLUMNS:
            raise ValueError(f"Column {column!r} is not sortable")
        return column


class SetChartType(FrozenModel):
    chart_type: ChartType


class ToggleMonthlyHighestChart(FrozenModel):
    pass


Action = Union[
    SelectView,
    StageDates,
    ApplyDateRange,
    SelectPreset,
    ToggleSort,
    SetChartType,
    ToggleMonthlyHighestChart,
]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def initial_state(
    dataset: Dataset,
    today: Optional[DateLike] = None,
    preset: RangePreset = RangePreset.MONTH,
) -> ReportState:
    """State for a freshly loaded dataset.

    The preset's range is clamped to the span of the dataset. When the
    dataset ends before the preset begins, the whole dataset span is used.
    """
    default = preset_range(preset, today)
    start = max(default.start_date, dataset.date_range.start_date)
    end = min(default.end_date, dataset.date_range.end_date)
    if start > end:
        start, end = dataset.date_range.start_date, dataset.date_range.end_date
    return ReportState(
        applied_range=DateRange(start_date=start, end_date=end),
        display_start=start,
        display_end=end,
        preset=preset,
    )


def _apply_range(
    state: ReportState,
    start: Optional[date],
    end: Optional[date],
    today: date,
) -> ReportState:
    if start is None or end is None or start > end:
        # Discard the edit: keep the applied range, reset the inputs to the preset.
        fallback = preset_range(state.preset, today)
        logger.info(
            "Discarding invalid date range %s..%s; inputs reset to preset %s",
            start,
            end,
            state.preset.value,
        )
        return state.model_copy(
            update={
                "display_start": fallback.start_date,
                "display_end": fallback.end_date,
            }
        )
    return state.model_copy(
        update={
            "applied_range": DateRange(start_date=start, end_date=end),
            "display_start": start,
            "display_end": end,
        }
    )


def _next_sort_order(current: SortOrder, column: str) -> SortOrder:
    if current.column != column:
        return SortOrder(column=column, direction=SortDirection.ASC)
    if current.direction == SortDirection.ASC:
        return SortOrder(column=column, direction=SortDirection.DESC)
    return SortOrder()


def reduce(state: ReportState, action: Action, today: Optional[DateLike] = None) -> ReportState:
    """Return the state that results from applying ``action`` to ``state``."""
    if isinstance(action, SelectView):
        return state.model_copy(
            update={
                "view": action.view,
                "user_name": action.user_name if action.view == ViewKind.USER else None,
                "show_monthly_highest": False,
            }
        )

    if isinstance(action, StageDates):
        update = {f"display_{name}": getattr(action, name) for name in action.model_fields_set}
        return state.model_copy(update=update)

    if isinstance(action, ApplyDateRange):
        fields = action.model_fields_set
        if fields:
            start = action.start if "start" in fields else state.display_start
            end = action.end if "end" in fields else state.display_end
        else:
            start, end = state.display_start, state.display_end
        return _apply_range(state, start, end, to_utc_date(today))

    if isinstance(action, SelectPreset):
        today = to_utc_date(today)
        selected = preset_range(action.preset, today)
        state = state.model_copy(update={"preset": action.preset})
        return _apply_range(state, selected.start_date, selected.end_date, today)

    if isinstance(action, ToggleSort):
        return state.model_copy(
            update={"sort_order": _next_sort_order(state.sort_order, action.column)}
        )

    if isinstance(action, SetChartType):
        return state.model_copy(update={"chart_type": action.chart_type})

    if isinstance(action, ToggleMonthlyHighestChart):
        return state.model_copy(update={"show_monthly_highest": not state.show_monthly_highest})

    raise TypeError(f"Unknown report action: {type(action).__name__}")


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


class ReportViews(FrozenModel):
    """Everything derived from (dataset, applied range, sort order, view)."""

    filtered: Dataset
    sorted_users: List[UserRecord]
    current_user: Optional[UserRecord] = None
    monthly: List[MonthlyAggregate]
    quarterly: List[QuarterlyAggregate]
    users_total: Totals
    monthly_total: Totals
    quarterly_total: Totals
    max_user_usage_mb: float = 0.0
    max_daily_usage_mb: float = 0.0


def sort_users(users: List[UserRecord], sort_order: SortOrder) -> List[UserRecord]:
    """Order users by total usage when that sort is active, else by user id."""
    if sort_order.column == TOTAL_USAGE_COLUMN and sort_order.direction is not None:
        return sorted(
            users,
            key=lambda user: user.summary.total_usage_mb,
            reverse=sort_order.direction == SortDirection.DESC,
        )
    return sorted(users, key=lambda user: user.user_id)


def derive_views(dataset: Dataset, state: ReportState) -> ReportViews:
    """Recompute every derived view for ``state``.

    Monthly and quarterly aggregates are always rebuilt together from the
    filtered data, whatever the active view, so switching views never shows
    a stale roll-up.
    """
    applied = state.applied_range or dataset.date_range
    filtered = filter_by_date_range(dataset, applied.start_date, applied.end_date)
    sorted_users = sort_users(filtered.users, state.sort_order)
    monthly = compute_monthly_aggregates(filtered)
    quarterly = compute_quarterly_aggregates(filtered)

    current_user = None
    max_daily = 0.0
    if state.view == ViewKind.USER:
        current_user = filtered.find_user(state.user_name)
        if current_user is not None and current_user.daily_data:
            max_daily = max(record.total_mb for record in current_user.daily_data)

    return ReportViews(
        filtered=filtered,
        sorted_users=sorted_users,
        current_user=current_user,
        monthly=monthly,
        quarterly=quarterly,
        users_total=sum_totals(user.summary for user in sorted_users),
        monthly_total=sum_totals(item.totals for item in monthly),
        quarterly_total=sum_totals(item.totals for item in quarterly),
        max_user_usage_mb=max(
            (user.summary.total_usage_mb for user in sorted_users), default=0.0
        ),
        max_daily_usage_mb=max_daily,
    )


def has_view_data(state: ReportState, views: ReportViews) -> bool:
    """Whether the active view has anything to show."""
    if state.view == ViewKind.OVERVIEW:
        return bool(views.filtered.users)
    if state.view == ViewKind.MONTHLY:
        return bool(views.monthly)
    if state.view == ViewKind.QUARTERLY:
        return bool(views.quarterly)
    return views.current_user is not None and bool(views.current_user.daily_data)
