"""Display-ready tables and chart series for each report view.

Cells come out pre-localized (Shamsi dates, Persian digits) so the client
and the CSV export can use them as they are. Chart specs carry labels, data
and colors only; drawing them is up to the charting library.
"""

from typing import List, Optional

from bandwidth_report.schemas import (
    ChartDataset,
    ChartSpec,
    ChartType,
    Totals,
    ViewKind,
    ViewTable,
)
from bandwidth_report.services.report_state import ReportState, ReportViews, has_view_data
from bandwidth_report.services.shamsi import (
    QUARTER_NAMES,
    SHAMSI_MONTH_NAMES,
    format_shamsi_date,
    to_persian_digits,
)

REPORT_TITLE = "گزارش مصرف اینترنت"
GRAND_TOTAL_LABEL = "جمع کل"

UPLOAD_HEADER = "آپلود (MB)"
DOWNLOAD_HEADER = "دانلود (MB)"
TOTAL_HEADER = "مجموع مصرف (MB)"

OVERVIEW_HEADERS = ["ردیف", "نام کامپیوتر", "نام کاربر", UPLOAD_HEADER, DOWNLOAD_HEADER, TOTAL_HEADER]
MONTHLY_HEADERS = [
    "ردیف",
    "ماه",
    "تعداد روز",
    UPLOAD_HEADER,
    DOWNLOAD_HEADER,
    TOTAL_HEADER,
    "کاربر پرمصرف",
    "میزان مصرف (MB/GB)",
]
QUARTERLY_HEADERS = ["ردیف", "سال", "فصل", "تعداد روز", UPLOAD_HEADER, DOWNLOAD_HEADER, TOTAL_HEADER]
USER_HEADERS = ["ردیف", "تاریخ", UPLOAD_HEADER, DOWNLOAD_HEADER, TOTAL_HEADER]

_SPRING = ["#69F0AE", "#00C853", "#00A040"]
_SUMMER = ["#FFC107", "#FF9800", "#EF6C00"]
_AUTUMN = ["#FF8A65", "#FF5722", "#D84315"]
_WINTER = ["#64B5F6", "#2196F3", "#1565C0"]

MONTH_COLORS = dict(zip(SHAMSI_MONTH_NAMES, _SPRING + _SUMMER + _AUTUMN + _WINTER))
QUARTER_COLORS = {
    QUARTER_NAMES[1]: "#4CAF50",
    QUARTER_NAMES[2]: "#FF9800",
    QUARTER_NAMES[3]: "#FFC107",
    QUARTER_NAMES[4]: "#2196F3",
}
HIGHEST_CONSUMER_COLOR = "#DC2626"
USER_DAILY_COLOR = "rgba(75, 192, 192, 0.6)"


def format_mb(value: float) -> str:
    """Plain MB figure with at most two decimals and no trailing zeros."""
    return f"{value:.2f}".rstrip("0").rstrip(".")


def localized_mb(value: float) -> str:
    return to_persian_digits(format_mb(value))


def format_readable_size(mb: float) -> str:
    """Size in MB, or in GB from 1024 MB up, with Persian digits."""
    if mb >= 1024:
        return to_persian_digits(f"{mb / 1024:.2f}") + " GB"
    return to_persian_digits(f"{mb:.2f}") + " MB"


def _total_cells(totals: Totals) -> List[str]:
    return [
        format_readable_size(totals.total_upload_mb),
        format_readable_size(totals.total_download_mb),
        format_readable_size(totals.total_usage_mb),
    ]


def period_label(state: ReportState, views: ReportViews) -> str:
    """The "period: X to Y" line shown under the report title."""
    date_range = views.filtered.date_range
    start, end = date_range.start_date, date_range.end_date
    if state.view == ViewKind.USER and views.current_user and views.current_user.daily_data:
        days = [record.day for record in views.current_user.daily_data]
        start, end = min(days), max(days)
    return "بازه زمانی: {} تا {}".format(
        to_persian_digits(format_shamsi_date(start)),
        to_persian_digits(format_shamsi_date(end)),
    )


def build_table(state: ReportState, views: ReportViews) -> Optional[ViewTable]:
    """Table for the active view; None for a user view with no such user."""
    if state.view == ViewKind.OVERVIEW:
        rows = [
            [
                to_persian_digits(index),
                user.user_id,
                user.display_name,
                localized_mb(user.summary.total_upload_mb),
                localized_mb(user.summary.total_download_mb),
                localized_mb(user.summary.total_usage_mb),
            ]
            for index, user in enumerate(views.sorted_users, start=1)
        ]
        highlighted = [
            index
            for index, user in enumerate(views.sorted_users)
            if user.summary.total_usage_mb == views.max_user_usage_mb
        ]
        return ViewTable(
            title="خلاصه کل مصرف",
            headers=OVERVIEW_HEADERS,
            rows=rows,
            total_row=["", "", GRAND_TOTAL_LABEL] + _total_cells(views.users_total),
            highlighted_rows=highlighted,
        )

    if state.view == ViewKind.MONTHLY:
        rows = [
            [
                to_persian_digits(index),
                item.period_label,
                to_persian_digits(item.days_count),
                localized_mb(item.totals.total_upload_mb),
                localized_mb(item.totals.total_download_mb),
                localized_mb(item.totals.total_usage_mb),
                item.highest_consumer_name,
                format_readable_size(item.highest_consumer_usage_mb),
            ]
            for index, item in enumerate(views.monthly, start=1)
        ]
        return ViewTable(
            title="گزارش کلی ماهیانه",
            headers=MONTHLY_HEADERS,
            rows=rows,
            total_row=["", "", GRAND_TOTAL_LABEL] + _total_cells(views.monthly_total) + ["", ""],
        )

    if state.view == ViewKind.QUARTERLY:
        rows = [
            [
                to_persian_digits(index),
                to_persian_digits(item.shamsi_year),
                item.period_label,
                to_persian_digits(item.days_count),
                localized_mb(item.totals.total_upload_mb),
                localized_mb(item.totals.total_download_mb),
                localized_mb(item.totals.total_usage_mb),
            ]
            for index, item in enumerate(views.quarterly, start=1)
        ]
        return ViewTable(
            title="گزارش کلی فصلی",
            headers=QUARTERLY_HEADERS,
            rows=rows,
            total_row=["", "", "", GRAND_TOTAL_LABEL] + _total_cells(views.quarterly_total),
        )

    user = views.current_user
    if user is None:
        return None
    rows = [
        [
            to_persian_digits(index),
            to_persian_digits(format_shamsi_date(record.day)),
            localized_mb(record.upload_mb),
            localized_mb(record.download_mb),
            localized_mb(record.total_mb),
        ]
        for index, record in enumerate(user.daily_data, start=1)
    ]
    highlighted = [
        index
        for index, record in enumerate(user.daily_data)
        if record.total_mb == views.max_daily_usage_mb
    ]
    return ViewTable(
        title=f"جزئیات مصرف کاربر: {user.display_name}",
        headers=USER_HEADERS,
        rows=rows,
        total_row=["", GRAND_TOTAL_LABEL] + _total_cells(user.summary),
        highlighted_rows=highlighted,
    )


def build_chart(state: ReportState, views: ReportViews) -> Optional[ChartSpec]:
    """Chart series for the active view; None when the view has no data."""
    if not has_view_data(state, views):
        return None

    if state.view == ViewKind.OVERVIEW:
        users = views.sorted_users
        return ChartSpec(
            title="گزارش کلی مصرف اینترنت",
            labels=[user.display_name for user in users],
            datasets=[
                ChartDataset(
                    label="آپلود (MB)",
                    data=[user.summary.total_upload_mb for user in users],
                    background_colors=["#4CAF50"],
                ),
                ChartDataset(
                    label="دانلود (MB)",
                    data=[user.summary.total_download_mb for user in users],
                    background_colors=["#2196F3"],
                ),
                ChartDataset(
                    label="مجموع (MB)",
                    data=[user.summary.total_usage_mb for user in users],
                    background_colors=["#FF9800"],
                ),
            ],
        )

    if state.view == ViewKind.MONTHLY:
        labels = [item.period_label for item in views.monthly]
        if state.show_monthly_highest:
            return ChartSpec(
                title="نمودار مصرف کاربر پرمصرف ماهیانه",
                labels=labels,
                datasets=[
                    ChartDataset(
                        label="مصرف کاربر پرمصرف (MB)",
                        data=[item.highest_consumer_usage_mb for item in views.monthly],
                        background_colors=[HIGHEST_CONSUMER_COLOR],
                        tooltips=[f"کاربر: {item.highest_consumer_name}" for item in views.monthly],
                    )
                ],
            )
        return ChartSpec(
            title="نمودار مجموع مصرف ماهیانه",
            labels=labels,
            datasets=[
                ChartDataset(
                    label="مجموع مصرف ماهیانه (MB)",
                    data=[item.totals.total_usage_mb for item in views.monthly],
                    background_colors=[MONTH_COLORS[label] for label in labels],
                )
            ],
        )

    if state.view == ViewKind.QUARTERLY:
        return ChartSpec(
            title="نمودار مجموع مصرف فصلی",
            labels=[
                f"{item.period_label} {to_persian_digits(item.shamsi_year)}"
                for item in views.quarterly
            ],
            datasets=[
                ChartDataset(
                    label="مجموع مصرف فصلی (MB)",
                    data=[item.totals.total_usage_mb for item in views.quarterly],
                    background_colors=[QUARTER_COLORS[item.period_label] for item in views.quarterly],
                )
            ],
        )

    user = views.current_user
    return ChartSpec(
        chart_type=state.chart_type,
        title=f"نمودار مصرف برای {user.display_name}",
        labels=[format_shamsi_date(record.day) for record in user.daily_data],
        datasets=[
            ChartDataset(
                label="مجموع مصرف روزانه (MB)",
                data=[record.total_mb for record in user.daily_data],
                background_colors=[
                    USER_DAILY_COLOR if state.chart_type == ChartType.BAR else "transparent"
                ],
            )
        ],
    )
