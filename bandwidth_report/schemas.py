"""Pydantic schemas for the report dataset, derived views and API payloads.

Wire names follow the exported payload (camelCase) and are declared as field
aliases; Python code uses the snake_case attribute names. Every model is
frozen: the dataset and everything derived from it are read-only once built.
"""

import re
from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Producers round every MB value to 2 decimals, so sums may drift by a cent.
TOTALS_TOLERANCE_MB = 0.01
MONTH_KEY_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
QUARTER_KEY_PATTERN = r"^\d{4}-[1-4]$"
UNKNOWN_CONSUMER_NAME = "نامشخص"

_MONTH_KEY_RE = re.compile(MONTH_KEY_PATTERN)


def _check_usage_sum(total: float, download: float, upload: float) -> None:
    if abs(total - (download + upload)) > TOTALS_TOLERANCE_MB + 1e-9:
        raise ValueError(
            f"Total usage {total} does not match download {download} "
            f"+ upload {upload}"
        )


class FrozenModel(BaseModel):
    """Base for immutable models that accept both field names and aliases."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# Dataset
# ---------------------------------------------------------------------------


class DailyRecord(FrozenModel):
    """Usage of one user on one calendar day, in MB."""

    user_id: str = Field(..., alias="userId", description="Computer/user identifier")
    name: str = Field(..., description="Display name of the user")
    day: date = Field(..., description="Gregorian day (yyyy-MM-dd)")
    download_mb: float = Field(..., alias="download", ge=0, description="Download in MB")
    upload_mb: float = Field(..., alias="upload", ge=0, description="Upload in MB")
    total_mb: float = Field(
        ..., alias="totalUsage", ge=0, description="Total usage (download + upload) in MB"
    )

    @model_validator(mode="after")
    def _total_matches_parts(self):
        _check_usage_sum(self.total_mb, self.download_mb, self.upload_mb)
        return self


class Totals(FrozenModel):
    """Download, upload and total usage over some set of daily records.

    Each summed record is already within ``TOTALS_TOLERANCE_MB`` of its own
    download + upload, so a sum of n records may be off by up to n cents.
    No fixed tolerance is enforced here.
    """

    total_download_mb: float = Field(0.0, alias="totalDownload", ge=0)
    total_upload_mb: float = Field(0.0, alias="totalUpload", ge=0)
    total_usage_mb: float = Field(0.0, alias="totalUsage", ge=0)


class UserRecord(FrozenModel):
    """A user with their daily history (newest day first) and totals."""

    user_id: str = Field(..., alias="userId")
    display_name: str = Field(..., alias="name")
    daily_data: List[DailyRecord] = Field(default_factory=list, alias="dailyData")
    summary: Totals = Field(default_factory=Totals)


class DateRange(FrozenModel):
    """Inclusive range of Gregorian calendar days."""

    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class HighestConsumer(FrozenModel):
    """The user with the highest usage in a period."""

    user_name: str = Field(..., alias="userName")
    total_usage_mb: float = Field(..., alias="totalUsage", ge=0)


UNKNOWN_CONSUMER = HighestConsumer(user_name=UNKNOWN_CONSUMER_NAME, total_usage_mb=0.0)


class Dataset(FrozenModel):
    """The complete report payload; the single source of every derived view."""

    users: List[UserRecord] = Field(default_factory=list)
    date_range: DateRange = Field(..., alias="dateRange")
    monthly_highest_consumers: Dict[str, HighestConsumer] = Field(
        default_factory=dict, alias="monthlyHighestConsumers"
    )

    @field_validator("users")
    @classmethod
    def _unique_display_names(cls, users: List[UserRecord]) -> List[UserRecord]:
        seen = set()
        for user in users:
            if user.display_name in seen:
                raise ValueError(f"Duplicate user display name: {user.display_name!r}")
            seen.add(user.display_name)
        return users

    @field_validator("monthly_highest_consumers")
    @classmethod
    def _month_keys(cls, value: Dict[str, HighestConsumer]) -> Dict[str, HighestConsumer]:
        bad = sorted(key for key in value if not _MONTH_KEY_RE.match(key))
        if bad:
            raise ValueError(f"Invalid month keys (expected YYYY-MM): {bad}")
        return value

    def find_user(self, display_name: Optional[str]) -> Optional[UserRecord]:
        for user in self.users:
            if user.display_name == display_name:
                return user
        return None


# ---------------------------------------------------------------------------
# Derived aggregates
# ---------------------------------------------------------------------------


class MonthlyAggregate(FrozenModel):
    """Usage over one Gregorian month, labelled with its Shamsi month name."""

    period_key: str = Field(..., alias="periodKey", pattern=MONTH_KEY_PATTERN)
    period_label: str = Field(..., alias="periodLabel")
    shamsi_year: int = Field(..., alias="shamsiYear")
    shamsi_month: int = Field(..., alias="shamsiMonth", ge=1, le=12)
    days_count: int = Field(..., alias="daysCount", ge=0, le=31)
    totals: Totals
    highest_consumer_name: str = Field(..., alias="highestConsumerName")
    highest_consumer_usage_mb: float = Field(..., alias="highestConsumerUsage", ge=0)


class QuarterlyAggregate(FrozenModel):
    """Usage over one Shamsi season (three Shamsi months)."""

    period_key: str = Field(..., alias="periodKey", pattern=QUARTER_KEY_PATTERN)
    period_label: str = Field(..., alias="periodLabel")
    shamsi_year: int = Field(..., alias="shamsiYear")
    quarter: int = Field(..., ge=1, le=4)
    days_count: int = Field(..., alias="daysCount", ge=0, le=93)
    totals: Totals
    highest_consumer_name: str = Field(..., alias="highestConsumerName")
    highest_consumer_usage_mb: float = Field(..., alias="highestConsumerUsage", ge=0)


# ---------------------------------------------------------------------------
# Report state enums
# ---------------------------------------------------------------------------


class ViewKind(str, Enum):
    OVERVIEW = "overview"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    USER = "user"


class RangePreset(str, Enum):
    WEEK = "week"
    MONTH = "month"
    THREE_MONTHS = "3months"
    SIX_MONTHS = "6months"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ChartType(str, Enum):
    BAR = "bar"
    LINE = "line"


class SortOrder(FrozenModel):
    """Active sort column and direction; both None means the default order."""

    column: Optional[str] = None
    direction: Optional[SortDirection] = None


class AdvisoryLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"


class Advisory(FrozenModel):
    """A transient, non-fatal notice for the user. Equal by content."""

    text: str
    level: AdvisoryLevel = AdvisoryLevel.WARNING
    blocking: bool = False


# ---------------------------------------------------------------------------
# Presentation payloads
# ---------------------------------------------------------------------------


class ViewTable(FrozenModel):
    """Display-ready table for the active view; every cell is pre-localized."""

    title: str
    headers: List[str]
    rows: List[List[str]]
    total_row: List[str] = Field(default_factory=list, alias="totalRow")
    highlighted_rows: List[int] = Field(default_factory=list, alias="highlightedRows")


class ChartDataset(FrozenModel):
    label: str
    data: List[float]
    background_colors: List[str] = Field(default_factory=list, alias="backgroundColors")
    tooltips: List[str] = Field(default_factory=list)


class ChartSpec(FrozenModel):
    """Pre-aggregated chart series handed to the charting collaborator."""

    chart_type: ChartType = Field(ChartType.BAR, alias="chartType")
    title: str
    labels: List[str]
    datasets: List[ChartDataset]


class ExportResult(FrozenModel):
    filename: str
    content: str
    media_type: str = Field("text/csv; charset=utf-8", alias="mediaType")


# ---------------------------------------------------------------------------
# API requests and responses
# ---------------------------------------------------------------------------


class ViewSelectionRequest(FrozenModel):
    view: ViewKind = Field(..., description="overview, monthly, quarterly or user")
    user_name: Optional[str] = Field(
        None, alias="userName", description="Display name, required for the user view"
    )


class DateInputRequest(FrozenModel):
    start: Optional[date] = Field(None, description="Start day (yyyy-MM-dd)")
    end: Optional[date] = Field(None, description="End day (yyyy-MM-dd)")


class PresetRequest(FrozenModel):
    preset: RangePreset


class SortRequest(FrozenModel):
    column: str = Field(..., description="Column to sort by (only totalUsage)")


class ChartTypeRequest(FrozenModel):
    chart_type: ChartType = Field(..., alias="chartType")


class ReportStateOut(FrozenModel):
    view: ViewKind
    user_name: Optional[str] = Field(None, alias="userName")
    applied_range: Optional[DateRange] = Field(None, alias="appliedRange")
    display_start: Optional[date] = Field(None, alias="displayStart")
    display_end: Optional[date] = Field(None, alias="displayEnd")
    preset: RangePreset
    sort_order: SortOrder = Field(..., alias="sortOrder")
    chart_type: ChartType = Field(..., alias="chartType")
    show_monthly_highest: bool = Field(..., alias="showMonthlyHighest")


class ReportResponse(FrozenModel):
    """Everything the client needs to render the active view."""

    state: ReportStateOut
    period_label: str = Field(..., alias="periodLabel")
    has_data: bool = Field(..., alias="hasData")
    user_names: List[str] = Field(default_factory=list, alias="userNames")
    advisory: Optional[Advisory] = None
    table: Optional[ViewTable] = None
    chart: Optional[ChartSpec] = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str = Field(..., description="Error message")
