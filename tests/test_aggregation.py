"""Tests for date filtering and the monthly / quarterly roll-ups."""

from datetime import date

import pytest

from bandwidth_report.schemas import UNKNOWN_CONSUMER_NAME, DailyRecord
from bandwidth_report.services.aggregation import (
    compute_monthly_aggregates,
    compute_quarterly_aggregates,
    compute_totals,
    derive_monthly_highest_consumers,
    filter_by_date_range,
    month_key,
    sum_totals,
)
from bandwidth_report.services.ingestion import build_dataset


def _usage(dataset):
    return {user.display_name: user.summary.total_usage_mb for user in dataset.users}


class TestFilterByDateRange:
    """Tests for filter_by_date_range."""

    def test_full_month_keeps_both_users(self, march_dataset):
        """User A (100MB) and user B (50MB) both survive a full-March filter."""
        filtered = filter_by_date_range(march_dataset, date(2024, 3, 1), date(2024, 3, 31))

        assert _usage(filtered) == {"A": 100.0, "B": 50.0}
        assert filtered.date_range.start_date == date(2024, 3, 1)
        assert filtered.date_range.end_date == date(2024, 3, 31)
        highest = filtered.monthly_highest_consumers["2024-03"]
        assert (highest.user_name, highest.total_usage_mb) == ("A", 100.0)

    def test_partial_range_recomputes_totals(self, sample_dataset):
        filtered = filter_by_date_range(sample_dataset, "2024-03-01", "2024-03-31")

        ali = filtered.find_user("Ali")
        assert [record.day for record in ali.daily_data] == [date(2024, 3, 20), date(2024, 3, 10)]
        assert ali.summary.total_download_mb == 70.0
        assert ali.summary.total_upload_mb == 30.0
        assert ali.summary.total_usage_mb == 100.0
        assert filtered.find_user("Bahar").summary.total_usage_mb == 50.0

    def test_range_is_span_of_kept_days(self, sample_dataset):
        filtered = filter_by_date_range(sample_dataset, date(2024, 3, 1), date(2024, 3, 31))

        assert filtered.date_range.start_date == date(2024, 3, 5)
        assert filtered.date_range.end_date == date(2024, 3, 20)

    def test_users_without_records_dropped(self, sample_dataset):
        filtered = filter_by_date_range(sample_dataset, date(2024, 4, 1), date(2024, 4, 30))

        assert [user.display_name for user in filtered.users] == ["Bahar"]

    def test_empty_range_yields_empty_dataset(self, sample_dataset):
        """No match is a valid empty dataset carrying the requested bounds."""
        filtered = filter_by_date_range(sample_dataset, date(2025, 1, 1), date(2025, 1, 31))

        assert filtered.users == []
        assert filtered.date_range.start_date == date(2025, 1, 1)
        assert filtered.date_range.end_date == date(2025, 1, 31)

    def test_inverted_range_matches_nothing(self, sample_dataset):
        filtered = filter_by_date_range(sample_dataset, date(2024, 3, 31), date(2024, 3, 1))

        assert filtered.users == []

    def test_bounds_are_inclusive(self, sample_dataset):
        filtered = filter_by_date_range(sample_dataset, date(2024, 2, 15), date(2024, 2, 15))

        assert _usage(filtered) == {"Ali": 10.0}

    def test_idempotent(self, sample_dataset):
        start, end = date(2024, 3, 1), date(2024, 4, 30)
        once = filter_by_date_range(sample_dataset, start, end)
        twice = filter_by_date_range(once, start, end)

        assert twice == once

    def test_source_dataset_untouched(self, sample_dataset):
        before = sample_dataset.model_copy(deep=True)
        filter_by_date_range(sample_dataset, date(2024, 3, 1), date(2024, 3, 1))

        assert sample_dataset == before

    def test_highest_consumers_pass_through(self, sample_dataset):
        filtered = filter_by_date_range(sample_dataset, date(2024, 3, 1), date(2024, 3, 31))

        assert filtered.monthly_highest_consumers == sample_dataset.monthly_highest_consumers

    def test_summary_matches_parts(self, sample_dataset):
        filtered = filter_by_date_range(sample_dataset, date(2024, 2, 1), date(2024, 4, 30))

        for user in filtered.users:
            summary = user.summary
            assert summary.total_usage_mb == pytest.approx(
                summary.total_download_mb + summary.total_upload_mb, abs=0.01
            )


class TestTotals:
    """Tests for compute_totals and sum_totals."""

    def test_compute_totals_rounds_at_the_end(self):
        records = [
            DailyRecord(user_id="PC-01", name="Ali", day=date(2024, 3, day), download_mb=0.1, upload_mb=0.2, total_mb=0.3)
            for day in (1, 2, 3)
        ]

        totals = compute_totals(records)

        assert totals.total_download_mb == 0.3
        assert totals.total_upload_mb == 0.6
        assert totals.total_usage_mb == 0.9

    def test_compute_totals_empty(self):
        totals = compute_totals([])

        assert totals.total_usage_mb == 0.0

    def test_sum_totals(self, sample_dataset):
        grand = sum_totals(user.summary for user in sample_dataset.users)

        assert grand.total_download_mb == 163.0
        assert grand.total_upload_mb == 77.5
        assert grand.total_usage_mb == 240.5

    def test_month_key(self):
        assert month_key(date(2024, 3, 5)) == "2024-03"


class TestMonthlyAggregates:
    """Tests for compute_monthly_aggregates."""

    def test_rollup(self, sample_dataset):
        monthly = compute_monthly_aggregates(sample_dataset)

        assert [item.period_key for item in monthly] == ["2024-02", "2024-03", "2024-04"]
        assert [item.period_label for item in monthly] == ["بهمن", "اسفند", "فروردین"]
        assert [item.shamsi_year for item in monthly] == [1402, 1402, 1403]
        assert [item.days_count for item in monthly] == [1, 3, 1]
        assert [item.totals.total_usage_mb for item in monthly] == [10.0, 150.0, 80.5]

    def test_carries_highest_consumers(self, sample_dataset):
        monthly = compute_monthly_aggregates(sample_dataset)

        assert [(item.highest_consumer_name, item.highest_consumer_usage_mb) for item in monthly] == [
            ("Ali", 10.0),
            ("Ali", 100.0),
            ("Bahar", 80.5),
        ]

    def test_missing_highest_consumer_uses_sentinel(self, sample_dataset):
        dataset = sample_dataset.model_copy(update={"monthly_highest_consumers": {}})

        monthly = compute_monthly_aggregates(dataset)

        assert all(item.highest_consumer_name == UNKNOWN_CONSUMER_NAME for item in monthly)
        assert all(item.highest_consumer_usage_mb == 0.0 for item in monthly)

    def test_empty_dataset(self, sample_dataset):
        empty = filter_by_date_range(sample_dataset, date(2030, 1, 1), date(2030, 1, 2))

        assert compute_monthly_aggregates(empty) == []


class TestQuarterlyAggregates:
    """Tests for compute_quarterly_aggregates."""

    def test_rollup_by_shamsi_season(self, sample_dataset):
        quarterly = compute_quarterly_aggregates(sample_dataset)

        assert [item.period_key for item in quarterly] == ["1402-4", "1403-1"]
        assert [item.period_label for item in quarterly] == ["زمستان", "بهار"]
        assert [item.days_count for item in quarterly] == [3, 2]
        assert [item.totals.total_usage_mb for item in quarterly] == [95.0, 145.5]

    def test_highest_consumer_per_season(self, sample_dataset):
        quarterly = compute_quarterly_aggregates(sample_dataset)

        assert [(item.highest_consumer_name, item.highest_consumer_usage_mb) for item in quarterly] == [
            ("Ali", 70.0),
            ("Bahar", 105.5),
        ]

    def test_completeness(self, sample_dataset):
        """Monthly, quarterly and per-user totals account for the same usage."""
        filtered = filter_by_date_range(sample_dataset, date(2024, 1, 1), date(2024, 12, 31))
        users = sum_totals(user.summary for user in filtered.users)
        monthly = sum_totals(item.totals for item in compute_monthly_aggregates(filtered))
        quarterly = sum_totals(item.totals for item in compute_quarterly_aggregates(filtered))

        assert monthly.total_usage_mb == pytest.approx(users.total_usage_mb, abs=0.01)
        assert quarterly.total_usage_mb == pytest.approx(users.total_usage_mb, abs=0.01)
        assert quarterly.total_download_mb == pytest.approx(users.total_download_mb, abs=0.01)


class TestDeriveMonthlyHighestConsumers:
    """Tests for derive_monthly_highest_consumers."""

    def test_picks_highest_per_month(self, sample_dataset):
        derived = derive_monthly_highest_consumers(sample_dataset.users)

        assert {key: value.user_name for key, value in derived.items()} == {
            "2024-02": "Ali",
            "2024-03": "Ali",
            "2024-04": "Bahar",
        }
        assert derived["2024-03"].total_usage_mb == 100.0

    def test_tie_goes_to_first_name(self, payload_factory):
        payload = payload_factory(
            {
                ("PC-09", "Zed"): [("2024-05-01", 40.0, 10.0)],
                ("PC-01", "Amy"): [("2024-05-02", 25.0, 25.0)],
            }
        )
        dataset = build_dataset(payload)

        derived = derive_monthly_highest_consumers(list(reversed(dataset.users)))

        assert derived["2024-05"].user_name == "Amy"
        assert derived["2024-05"].total_usage_mb == 50.0

    def test_no_records(self):
        assert derive_monthly_highest_consumers([]) == {}


class TestRoundingDrift:
    """Producer rounding leaves each record up to a cent off download + upload."""

    @pytest.fixture()
    def drifted_dataset(self, payload_factory):
        payload = payload_factory({("PC-01", "Ali"): [(f"2024-03-{day:02d}", 1.0, 1.0) for day in range(1, 11)]})
        for record in payload["users"][0]["dailyData"]:
            record["totalUsage"] = 2.01
        return build_dataset(payload)

    def test_filter_accepts_drifted_records(self, drifted_dataset):
        filtered = filter_by_date_range(drifted_dataset, "2024-03-01", "2024-03-05")

        summary = filtered.find_user("Ali").summary
        assert summary.total_download_mb == 5.0
        assert summary.total_upload_mb == 5.0
        assert summary.total_usage_mb == 10.05

    def test_rollups_accept_drifted_records(self, drifted_dataset):
        monthly = compute_monthly_aggregates(drifted_dataset)
        quarterly = compute_quarterly_aggregates(drifted_dataset)

        assert monthly[0].totals.total_usage_mb == 20.1
        assert quarterly[0].totals.total_usage_mb == 20.1
        assert quarterly[0].days_count == 10
