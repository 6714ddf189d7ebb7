"""The report session: one dataset, the current state, and its derived views.

All user actions go through ``ReportSession.dispatch``. The session reduces
the action into a new state, re-derives the views (reusing the previous
derivation when its inputs did not change) and raises or clears the
"no data" advisory.
"""

import logging
import threading
from datetime import date
from typing import Callable, Optional

from bandwidth_report.config import Settings, settings
from bandwidth_report.schemas import Dataset, ExportResult, RangePreset, ViewTable
from bandwidth_report.services.advisory import (
    EMPTY_EXPORT_ADVISORY,
    NO_DATA_ADVISORY,
    AdvisoryNotifier,
)
from bandwidth_report.services.export import EmptyExportError, build_export
from bandwidth_report.services.ingestion import load_dataset, load_name_mapping
from bandwidth_report.services.presentation import build_table
from bandwidth_report.services.report_state import (
    Action,
    ReportState,
    ReportViews,
    derive_views,
    has_view_data,
    initial_state,
    reduce,
)
from bandwidth_report.services.shamsi import utc_today

logger = logging.getLogger(__name__)


class ReportNotReadyError(Exception):
    """Raised when an action arrives before a dataset has been loaded."""


class ReportSession:
    """Mediates every user action against a single loaded dataset.

    A session built without a dataset stays "not ready": it answers every
    action with ReportNotReadyError, which callers must keep apart from the
    "no data in range" advisory.
    """

    def __init__(
        self,
        dataset: Optional[Dataset],
        notifier: Optional[AdvisoryNotifier] = None,
        today: Callable[[], date] = utc_today,
        preset: RangePreset = RangePreset.MONTH,
    ):
        self.dataset = dataset
        self.notifier = notifier or AdvisoryNotifier()
        self._today = today
        self._cache_key = None
        self._views: Optional[ReportViews] = None
        # FastAPI runs sync endpoints on a threadpool; one action at a time.
        self._lock = threading.RLock()
        self.state: Optional[ReportState] = None
        if dataset is not None:
            self.state = initial_state(dataset, today(), preset)
            self.refresh()

    @property
    def ready(self) -> bool:
        return self.dataset is not None

    def _require_ready(self) -> None:
        if self.dataset is None:
            raise ReportNotReadyError("Report data is not loaded yet.")

    def _derive(self) -> ReportViews:
        state = self.state
        key = (id(self.dataset), state.applied_range, state.sort_order, state.view, state.user_name)
        if self._views is None or key != self._cache_key:
            logger.debug("Deriving views for %s", state.applied_range)
            self._views = derive_views(self.dataset, state)
            self._cache_key = key
        return self._views

    @property
    def views(self) -> ReportViews:
        self._require_ready()
        with self._lock:
            return self._derive()

    @property
    def has_data(self) -> bool:
        return has_view_data(self.state, self.views)

    def refresh(self) -> ReportViews:
        """Re-derive the views and bring the "no data" advisory up to date."""
        self._require_ready()
        with self._lock:
            views = self._derive()
            if not has_view_data(self.state, views):
                self.notifier.raise_advisory(NO_DATA_ADVISORY)
            elif self.notifier.current is not None and not self.notifier.current.blocking:
                self.notifier.dismiss()
            return views

    def dispatch(self, action: Action) -> ReportViews:
        """Apply a user action and return the freshly derived views."""
        self._require_ready()
        with self._lock:
            self.state = reduce(self.state, action, self._today())
            return self.refresh()

    def dismiss_advisory(self) -> None:
        self.notifier.dismiss()

    def export(self) -> Optional[ExportResult]:
        """Export the active view, or raise a blocking advisory and return None."""
        self._require_ready()
        with self._lock:
            state, views = self.state, self._derive()
        try:
            return build_export(state, views)
        except EmptyExportError as e:
            logger.warning("Export refused: %s", e)
            self.notifier.raise_advisory(EMPTY_EXPORT_ADVISORY)
            return None

    def print_table(self) -> Optional[ViewTable]:
        self._require_ready()
        with self._lock:
            return build_table(self.state, self._derive())


def load_session(config: Settings = settings, notifier: Optional[AdvisoryNotifier] = None) -> ReportSession:
    """Build a session from the configured payload.

    A missing or malformed payload is logged and yields a not-ready session
    rather than an exception.
    """
    notifier = notifier or AdvisoryNotifier(config.ADVISORY_TIMEOUT_SECONDS)
    dataset = None
    try:
        mapping = load_name_mapping(config.NAME_MAPPING_PATH) if config.NAME_MAPPING_PATH else None
        dataset = load_dataset(config.REPORT_DATA_PATH, mapping, config.EXCLUDED_USERS)
    except OSError as e:
        logger.error("Report payload could not be read: %s", e)
    except ValueError as e:
        logger.error("Report payload is malformed: %s", e)
    return ReportSession(dataset, notifier, preset=config.DEFAULT_RANGE_PRESET)


_session: Optional[ReportSession] = None
_session_lock = threading.Lock()


def get_report_session() -> ReportSession:
    """Dependency that provides the process-wide report session."""
    global _session
    with _session_lock:
        if _session is None:
            _session = load_session()
    return _session
