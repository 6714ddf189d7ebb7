"""Transient user-facing advisories with deduplication and auto-dismissal."""

import logging
import threading
from typing import Callable, List, Optional

from bandwidth_report.schemas import Advisory, AdvisoryLevel

logger = logging.getLogger(__name__)

NO_DATA_ADVISORY = Advisory(
    text="هیچ داده‌ای برای بازه زمانی انتخابی شما یا پس از اعمال فیلترها پیدا نشد.",
    level=AdvisoryLevel.WARNING,
)
EMPTY_EXPORT_ADVISORY = Advisory(
    text="داده‌ای برای گزارش انتخاب شده جهت خروجی اکسل یافت نشد.",
    level=AdvisoryLevel.WARNING,
    blocking=True,
)

Listener = Callable[[Optional[Advisory]], None]


class AdvisoryNotifier:
    """Holds at most one active advisory and clears it after a delay.

    Raising the advisory that is already active is a no-op. Raising a
    different one replaces it and restarts the dismissal timer, so a timer
    started for an older advisory can never clear a newer one.
    """

    def __init__(
        self,
        timeout_seconds: float = 2.5,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.timeout_seconds = timeout_seconds
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._current: Optional[Advisory] = None
        self._timer = None
        self._generation = 0
        self._listeners: List[Listener] = []
        self.raised_count = 0

    @property
    def current(self) -> Optional[Advisory]:
        return self._current

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def raise_advisory(self, advisory: Advisory) -> bool:
        """Activate ``advisory``; returns False when it was already active."""
        with self._lock:
            if advisory == self._current:
                return False
            self._cancel_timer()
            self._generation += 1
            self._current = advisory
            self.raised_count += 1
            timer = self._timer_factory(
                self.timeout_seconds, self._expire, args=(self._generation,)
            )
            timer.daemon = True
            timer.start()
            self._timer = timer
        logger.info("Advisory raised: %s", advisory.text)
        self._notify(advisory)
        return True

    def dismiss(self) -> None:
        """Clear the active advisory now and cancel its pending timer."""
        with self._lock:
            if self._current is None:
                return
            self._cancel_timer()
            self._generation += 1
            self._current = None
        self._notify(None)

    def _expire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
            self._current = None
        logger.debug("Advisory auto-dismissed")
        self._notify(None)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self, advisory: Optional[Advisory]) -> None:
        for listener in list(self._listeners):
            listener(advisory)
