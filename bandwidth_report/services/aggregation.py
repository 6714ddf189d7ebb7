"""Aggregation engine: date filtering, per-user totals and period roll-ups.

Every function here is a pure pass over the in-memory dataset. Nothing is
cached between calls; callers that want to avoid recomputation memoize on
their own inputs (see ``services.session``).

Money-style rounding applies: each column is summed first and rounded to 2
decimals at the end, the same way the exporter rounds its summaries.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Tuple, Union

import pandas as pd

from bandwidth_report.schemas import (
    UNKNOWN_CONSUMER,
    DailyRecord,
    Dataset,
    DateRange,
    HighestConsumer,
    MonthlyAggregate,
    QuarterlyAggregate,
    Totals,
    UserRecord,
)
from bandwidth_report.services.shamsi import (
    date_to_shamsi,
    parse_iso_date,
    quarter_name,
    quarter_of_month,
    shamsi_month_name,
    to_shamsi,
)

logger = logging.getLogger(__name__)


def _coerce_date(value: Union[date, str]) -> date:
    if isinstance(value, str):
        return parse_iso_date(value)
    return value


def month_key(day: date) -> str:
    """Gregorian period key, e.g. ``2024-03``."""
    return f"{day.year:04d}-{day.month:02d}"


def compute_totals(records: Iterable[DailyRecord]) -> Totals:
    """Sum download, upload and total usage over ``records``."""
    download = upload = usage = 0.0
    for record in records:
        download += record.download_mb
        upload += record.upload_mb
        usage += record.total_mb
    return Totals(
        total_download_mb=round(download, 2),
        total_upload_mb=round(upload, 2),
        total_usage_mb=round(usage, 2),
    )


def sum_totals(totals: Iterable[Totals]) -> Totals:
    """Grand total over already-computed totals (table footer rows)."""
    download = upload = usage = 0.0
    for item in totals:
        download += item.total_download_mb
        upload += item.total_upload_mb
        usage += item.total_usage_mb
    return Totals(
        total_download_mb=round(download, 2),
        total_upload_mb=round(upload, 2),
        total_usage_mb=round(usage, 2),
    )


def _pick_highest(usage_by_user: Dict[str, float]) -> Tuple[str, float]:
    """Highest usage wins; equal usage goes to the lexicographically first name."""
    name, usage = min(usage_by_user.items(), key=lambda item: (-item[1], item[0]))
    return name, round(usage, 2)


def filter_by_date_range(
    dataset: Dataset,
    start: Union[date, str],
    end: Union[date, str],
) -> Dataset:
    """Keep only the daily records between ``start`` and ``end`` inclusive.

    Each surviving user gets totals recomputed from the kept records; users
    with no record in range are dropped. The result's ``date_range`` is the
    span of days actually present, or the requested bounds when nothing
    matched. An empty result is a valid "no data" dataset, not an error.

    Args:
        dataset: The dataset to filter (typically the full loaded payload).
        start: First day to keep, as a date or ``yyyy-MM-dd`` string.
        end: Last day to keep, as a date or ``yyyy-MM-dd`` string.

    Returns:
        A new Dataset; ``monthly_highest_consumers`` passes through unchanged.
    """
    requested = DateRange(start_date=_coerce_date(start), end_date=_coerce_date(end))

    users = []
    for user in dataset.users:
        kept = [record for record in user.daily_data if requested.contains(record.day)]
        if not kept:
            continue
        users.append(
            user.model_copy(update={"daily_data": kept, "summary": compute_totals(kept)})
        )

    if users:
        days = [record.day for user in users for record in user.daily_data]
        actual = DateRange(start_date=min(days), end_date=max(days))
    else:
        actual = requested

    logger.debug(
        "Filtered %s..%s: %d of %d users kept",
        requested.start_date,
        requested.end_date,
        len(users),
        len(dataset.users),
    )
    return Dataset(
        users=users,
        date_range=actual,
        monthly_highest_consumers=dataset.monthly_highest_consumers,
    )


def compute_monthly_aggregates(dataset: Dataset) -> List[MonthlyAggregate]:
    """Roll every daily record up by Gregorian month, oldest month first.

    Each month is labelled with the Shamsi month its first day falls in and
    carries the precomputed highest consumer for that month (or the
    "unknown" sentinel when the dataset has none).
    """
    sums: Dict[str, List[float]] = defaultdict(lambda: [0.0, 0.0, 0.0])
    days: Dict[str, set] = defaultdict(set)

    for user in dataset.users:
        for record in user.daily_data:
            key = month_key(record.day)
            bucket = sums[key]
            bucket[0] += record.download_mb
            bucket[1] += record.upload_mb
            bucket[2] += record.total_mb
            days[key].add(record.day)

    report = []
    for key in sorted(sums):
        year, month = (int(part) for part in key.split("-"))
        jy, jm, _ = to_shamsi(year, month, 1)
        download, upload, usage = sums[key]
        highest = dataset.monthly_highest_consumers.get(key, UNKNOWN_CONSUMER)
        report.append(
            MonthlyAggregate(
                period_key=key,
                period_label=shamsi_month_name(jm),
                shamsi_year=jy,
                shamsi_month=jm,
                days_count=len(days[key]),
                totals=Totals(
                    total_download_mb=round(download, 2),
                    total_upload_mb=round(upload, 2),
                    total_usage_mb=round(usage, 2),
                ),
                highest_consumer_name=highest.user_name,
                highest_consumer_usage_mb=round(highest.total_usage_mb, 2),
            )
        )
    return report


def compute_quarterly_aggregates(dataset: Dataset) -> List[QuarterlyAggregate]:
    """Roll every daily record up by Shamsi season, oldest season first."""
    sums: Dict[Tuple[int, int], List[float]] = defaultdict(lambda: [0.0, 0.0, 0.0])
    days: Dict[Tuple[int, int], set] = defaultdict(set)
    per_user: Dict[Tuple[int, int], Dict[str, float]] = defaultdict(
        lambda: defaultdict(float)
    )

    for user in dataset.users:
        for record in user.daily_data:
            jy, jm, _ = date_to_shamsi(record.day)
            key = (jy, quarter_of_month(jm))
            bucket = sums[key]
            bucket[0] += record.download_mb
            bucket[1] += record.upload_mb
            bucket[2] += record.total_mb
            days[key].add(record.day)
            per_user[key][user.display_name] += record.total_mb

    report = []
    for key in sorted(sums):
        jy, quarter = key
        download, upload, usage = sums[key]
        top_name, top_usage = _pick_highest(per_user[key])
        report.append(
            QuarterlyAggregate(
                period_key=f"{jy}-{quarter}",
                period_label=quarter_name(quarter),
                shamsi_year=jy,
                quarter=quarter,
                days_count=len(days[key]),
                totals=Totals(
                    total_download_mb=round(download, 2),
                    total_upload_mb=round(upload, 2),
                    total_usage_mb=round(usage, 2),
                ),
                highest_consumer_name=top_name,
                highest_consumer_usage_mb=top_usage,
            )
        )
    return report


def derive_monthly_highest_consumers(users: List[UserRecord]) -> Dict[str, HighestConsumer]:
    """Find the highest-usage user of every Gregorian month in ``users``.

    Per-user-per-month usage is grouped with pandas, then each month keeps
    its maximum. Ties go to the lexicographically first display name so the
    result does not depend on the order users arrive in.
    """
    rows = [
        {"month": month_key(record.day), "user": user.display_name, "usage": record.total_mb}
        for user in users
        for record in user.daily_data
    ]
    if not rows:
        return {}

    df = pd.DataFrame(rows)
    monthly = df.groupby(["month", "user"], as_index=False)["usage"].sum()
    monthly = monthly.sort_values(
        ["month", "usage", "user"], ascending=[True, False, True], kind="mergesort"
    )
    top = monthly.drop_duplicates(subset="month", keep="first")

    return {
        row.month: HighestConsumer(user_name=row.user, total_usage_mb=round(float(row.usage), 2))
        for row in top.itertuples(index=False)
    }
