"""
Recurring driver for the dynamic pricing batch.

Lifecycle: create -> start -> [run]* -> stop. One background thread waits out
the initial delay, then the fixed interval, and fires a tick each time. A
non-blocking lock is the reentrancy guard shared by ticks and manual runs
(per process by default, a redis lock when several processes drive pricing):

* a tick that finds a batch in flight is skipped silently;
* a manual run that finds a batch in flight raises ConcurrentRunRejected.

stop() only prevents future runs; an in-flight batch finishes on its own.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from tripwise.core.errors import ConcurrentRunRejected
from tripwise.engine.trips import utcnow
from tripwise.services.pricing_service import BatchResult, PricingService

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 15 * 60
DEFAULT_INITIAL_DELAY_SECONDS = 30
DEFAULT_SIGNIFICANT_CHANGE_PERCENT = 10.0


@dataclass(frozen=True)
class SchedulerStatus:
    is_running: bool
    is_started: bool
    next_run_description: str
    next_run_at: Optional[datetime]
    configuration: str = "Dynamic pricing based on time, occupancy, and booking velocity"


@dataclass(frozen=True)
class SchedulerHealth:
    status: str
    last_update: Optional[datetime]
    active_trip_count: int
    avg_adjustment: float


def describe_interval(seconds: float) -> str:
    if seconds % 3600 == 0:
        hours = int(seconds // 3600)
        return "Every hour" if hours == 1 else f"Every {hours} hours"
    if seconds % 60 == 0:
        minutes = int(seconds // 60)
        return "Every minute" if minutes == 1 else f"Every {minutes} minutes"
    return f"Every {seconds:g} seconds"


class PricingScheduler:
    def __init__(self, service: PricingService,
                 interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
                 initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS,
                 significant_change_percent: float = DEFAULT_SIGNIFICANT_CHANGE_PERCENT,
                 guard=None):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.service = service
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = max(initial_delay_seconds, 0)
        self.significant_change_percent = significant_change_percent

        # anything with acquire(blocking=False) / release() / locked(); shared across processes in celery mode
        self._guard = guard if guard is not None else threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._next_run_at: Optional[datetime] = None
        self.last_result: Optional[BatchResult] = None

    # --- lifecycle -----------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    @property
    def is_started(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        if self.is_started:
            logger.info("Pricing scheduler already started")
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._loop, args=(self._stop_event,),
                                        name="pricing-scheduler", daemon=True)
        self._thread.start()
        logger.info("Pricing scheduler started - %s, first run in %ss",
                    describe_interval(self.interval_seconds).lower(), self.initial_delay_seconds)

    def stop(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        """Cancel pending runs. Safe to call any number of times."""
        if self._stop_event.is_set() and self._thread is None:
            return
        self._stop_event.set()
        self._next_run_at = None
        thread, self._thread = self._thread, None
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("Pricing scheduler stopped")

    def _loop(self, stop_event: threading.Event) -> None:
        delay = self.initial_delay_seconds
        while True:
            self._next_run_at = utcnow() + timedelta(seconds=delay)
            if stop_event.wait(delay):
                return
            self.tick()
            delay = self.interval_seconds

    # --- runs ----------------------------------------------------------

    def tick(self) -> Optional[BatchResult]:
        """Timer path: skip if a batch is in flight, log and absorb failures."""
        if not self._guard.acquire(blocking=False):
            logger.info("Previous pricing update still running, skipping")
            return None
        try:
            logger.info("Running scheduled pricing update")
            return self._run("Scheduled")
        except Exception:
            logger.exception("Error during scheduled pricing update")
            return None
        finally:
            self._guard.release()

    def run_manual_update(self) -> BatchResult:
        """Admin path: same routine as the timer, but a concurrent call is an error."""
        if not self._guard.acquire(blocking=False):
            raise ConcurrentRunRejected()
        try:
            logger.info("Running manual pricing update")
            return self._run("Manual")
        except Exception:
            logger.exception("Error during manual pricing update")
            raise
        finally:
            self._guard.release()

    def _run(self, label: str) -> BatchResult:
        result = self.service.update_trip_prices()
        self.last_result = result
        logger.info("%s update completed: %s/%s trips updated",
                    label, result.prices_updated, result.total_trips_processed)
        significant = [u for u in result.updates if abs(u.adjustment) > self.significant_change_percent]
        if significant:
            logger.info("%s trips with significant price changes (>%g%%)",
                        len(significant), self.significant_change_percent)
            for u in significant:
                logger.info("  Trip %s: %+g%% - %s", u.trip_id, u.adjustment, u.reason)
        return result

    # --- introspection -------------------------------------------------

    def get_status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_running=self.is_running,
            is_started=self.is_started,
            next_run_description=describe_interval(self.interval_seconds),
            next_run_at=self._next_run_at if self.is_started else None,
        )

    def health_check(self) -> SchedulerHealth:
        stats = self.service.get_pricing_stats()
        return SchedulerHealth(
            status="Running" if self.is_running else "Idle",
            last_update=stats.last_update_time,
            active_trip_count=stats.total_active_trips,
            avg_adjustment=stats.average_price_adjustment,
        )
