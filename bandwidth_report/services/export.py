"""Delimited-text (Excel-friendly CSV) export of the active report view."""

import csv
import io
import logging
from typing import List, Sequence

from bandwidth_report.schemas import ExportResult, ViewKind
from bandwidth_report.services.presentation import REPORT_TITLE, build_table, period_label
from bandwidth_report.services.report_state import ReportState, ReportViews, has_view_data

logger = logging.getLogger(__name__)

BYTE_ORDER_MARK = "\ufeff"
DELIMITER = ";"
LINE_TERMINATOR = "\r\n"
FILENAME_PREFIX = "گزارش-مصرف-اینترنت"

_FILENAME_SUFFIXES = {
    ViewKind.OVERVIEW: "کلی",
    ViewKind.MONTHLY: "ماهیانه",
    ViewKind.QUARTERLY: "فصلی",
}


class EmptyExportError(Exception):
    """Raised when the active view has nothing to export."""


def _pad(cells: Sequence[str], width: int) -> List[str]:
    return list(cells) + [""] * (width - len(cells))


def to_delimited_text(title: str, rows: Sequence[Sequence[str]]) -> str:
    """Render ``title`` and ``rows`` as BOM-prefixed, ``;``-separated text.

    The title becomes the first row, padded to the widest row. Cells holding
    the separator, a quote or a line break are quoted, with embedded quotes
    doubled; every line ends with CRLF.
    """
    width = max((len(row) for row in rows), default=1)
    buffer = io.StringIO()
    writer = csv.writer(
        buffer,
        delimiter=DELIMITER,
        quotechar='"',
        quoting=csv.QUOTE_MINIMAL,
        lineterminator=LINE_TERMINATOR,
    )
    writer.writerow(_pad([title], width))
    for row in rows:
        writer.writerow([str(cell) for cell in row])
    return BYTE_ORDER_MARK + buffer.getvalue()


def build_export(state: ReportState, views: ReportViews) -> ExportResult:
    """Build the export file for the active view.

    Raises:
        EmptyExportError: If the active view has no data to export.
    """
    table = build_table(state, views)
    if table is None or not has_view_data(state, views):
        raise EmptyExportError(f"No data to export for view {state.view.value!r}")

    width = len(table.headers)
    rows = [_pad([period_label(state, views)], width)]
    if state.view == ViewKind.USER:
        user = views.current_user
        suffix = user.display_name
        rows.append(
            _pad(
                [f"جزئیات مصرف کاربر: {user.display_name} (نام کامپیوتر: {user.user_id})"],
                width,
            )
        )
    else:
        suffix = _FILENAME_SUFFIXES[state.view]
    rows.append([])
    rows.append(table.headers)
    rows.extend(table.rows)
    rows.append(table.total_row)

    filename = f"{FILENAME_PREFIX}-{suffix}.csv"
    logger.info("Exporting %s (%d data rows)", filename, len(table.rows))
    return ExportResult(filename=filename, content=to_delimited_text(REPORT_TITLE, rows))
