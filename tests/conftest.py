"""Shared test fixtures for the Bandwidth Usage Report tests.

Provides sample payloads, the datasets built from them, a report session
pinned to a fixed "today" with fake advisory timers, and a FastAPI test
client with the session dependency overridden.
"""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from bandwidth_report.main import app
from bandwidth_report.services.advisory import AdvisoryNotifier
from bandwidth_report.services.ingestion import build_dataset
from bandwidth_report.services.session import ReportSession, get_report_session

# 2024-03-25 is 1403/01/06, a Monday.
TODAY = date(2024, 3, 25)


def make_record(user_id, name, day, download, upload):
    return {
        "userId": user_id,
        "name": name,
        "day": day,
        "download": download,
        "upload": upload,
        "totalUsage": round(download + upload, 2),
    }


def make_payload(users, monthly_highest=None, date_range=None):
    """Build an export payload from ``{(user_id, name): [(day, down, up), ...]}``."""
    payload_users = []
    all_days = []
    for (user_id, name), rows in sorted(users.items(), key=lambda item: item[0][1]):
        records = [make_record(user_id, name, *row) for row in rows]
        records.sort(key=lambda record: record["day"], reverse=True)
        all_days.extend(record["day"] for record in records)
        download = round(sum(record["download"] for record in records), 2)
        upload = round(sum(record["upload"] for record in records), 2)
        payload_users.append(
            {
                "userId": user_id,
                "name": name,
                "dailyData": records,
                "summary": {
                    "userId": user_id,
                    "totalDownload": download,
                    "totalUpload": upload,
                    "totalUsage": round(download + upload, 2),
                },
            }
        )
    if date_range is None:
        date_range = {"startDate": min(all_days), "endDate": max(all_days)}
    return {
        "users": payload_users,
        "dateRange": date_range,
        "monthlyHighestConsumers": monthly_highest or {},
    }


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


@pytest.fixture()
def payload_factory():
    """Expose make_payload to tests that need a custom payload."""
    return make_payload


@pytest.fixture()
def sample_payload():
    """Two users across February, March and April 2024.

    Ali (PC-01): 2024-02-15 10MB, 2024-03-10 60MB, 2024-03-20 40MB
    Bahar (PC-02): 2024-03-05 25MB, 2024-03-20 25MB, 2024-04-02 80.5MB
    """
    return make_payload(
        {
            ("PC-01", "Ali"): [
                ("2024-03-20", 30.0, 10.0),
                ("2024-03-10", 40.0, 20.0),
                ("2024-02-15", 8.0, 2.0),
            ],
            ("PC-02", "Bahar"): [
                ("2024-04-02", 50.0, 30.5),
                ("2024-03-20", 20.0, 5.0),
                ("2024-03-05", 15.0, 10.0),
            ],
        },
        monthly_highest={
            "2024-02": {"userName": "Ali", "totalUsage": 10.0},
            "2024-03": {"userName": "Ali", "totalUsage": 100.0},
            "2024-04": {"userName": "Bahar", "totalUsage": 80.5},
        },
    )


@pytest.fixture()
def sample_dataset(sample_payload):
    return build_dataset(sample_payload)


@pytest.fixture()
def march_dataset():
    """User A uses 100MB and user B 50MB, all within March 2024."""
    payload = make_payload(
        {
            ("PC-A", "A"): [("2024-03-01", 30.0, 10.0), ("2024-03-31", 50.0, 10.0)],
            ("PC-B", "B"): [("2024-03-15", 40.0, 10.0)],
        },
        date_range={"startDate": "2024-03-01", "endDate": "2024-03-31"},
    )
    return build_dataset(payload)


@pytest.fixture()
def fake_timers():
    """List collecting every FakeTimer the notifier creates."""
    return []


@pytest.fixture()
def notifier(fake_timers):
    def factory(*args, **kwargs):
        timer = FakeTimer(*args, **kwargs)
        fake_timers.append(timer)
        return timer

    return AdvisoryNotifier(timeout_seconds=2.5, timer_factory=factory)


@pytest.fixture()
def session(sample_dataset, notifier):
    """A report session over the sample dataset, with today pinned to TODAY."""
    return ReportSession(sample_dataset, notifier, today=lambda: TODAY)


@pytest.fixture()
def client(session):
    """Create a FastAPI test client with the report session injected."""
    app.dependency_overrides[get_report_session] = lambda: session
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def not_ready_client(notifier):
    """Test client whose session has no dataset loaded."""
    app.dependency_overrides[get_report_session] = lambda: ReportSession(None, notifier)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
