"""Thread-backed facility for delayed and periodic scan invocations."""

import logging
import threading
from typing import Callable, List, Optional

from .exceptions import ScannerError

logger = logging.getLogger(__name__)


class ScheduledScan:
    """
    Handle for a scheduled invocation.
    
    Cancelling prevents future invocations; an invocation that is already
    running is left to complete.
    """

    def __init__(
        self,
        fn: Callable[[], None],
        delay_ms: int,
        interval_ms: Optional[int] = None,
        name: str = "ScheduledScan",
    ):
        self._fn = fn
        self._delay = max(delay_ms, 0) / 1000.0
        self._interval = interval_ms / 1000.0 if interval_ms is not None else None
        self._cancelled = threading.Event()
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> "ScheduledScan":
        self._thread.start()
        return self

    def _run(self) -> None:
        try:
            if self._cancelled.wait(timeout=self._delay):
                return
            while True:
                self._invoke()
                if self._interval is None:
                    return
                if self._cancelled.wait(timeout=self._interval):
                    return
        finally:
            self._done.set()

    def _invoke(self) -> None:
        try:
            self._fn()
        except Exception as e:
            logger.error(f"Scheduled invocation {self._thread.name} failed: {e}", exc_info=True)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def is_periodic(self) -> bool:
        return self._interval is not None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the schedule has finished; True if it did."""
        return self._done.wait(timeout=timeout)


class ScanScheduler:
    """
    Runs callables once after a delay or repeatedly with a fixed delay.
    
    Each schedule gets its own daemon thread, so a long-running call never
    delays other schedules.
    """

    def __init__(self):
        self._scheduled: List[ScheduledScan] = []
        self._lock = threading.Lock()
        self._shutdown = False

    def schedule_with_fixed_delay(
        self,
        fn: Callable[[], None],
        interval_ms: int,
        initial_delay_ms: int = 0,
    ) -> ScheduledScan:
        """
        Invoke ``fn`` repeatedly, waiting ``interval_ms`` after each call completes.
        
        Raises:
            ValueError: If interval_ms is not positive
            ScannerError: If the scheduler has been shut down
        """
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive: {interval_ms}")
        return self._submit(ScheduledScan(fn, initial_delay_ms, interval_ms, name="PeriodicScan"))

    def schedule_once(self, fn: Callable[[], None], delay_ms: int = 0) -> ScheduledScan:
        """
        Invoke ``fn`` once after ``delay_ms``.
        
        Raises:
            ScannerError: If the scheduler has been shut down
        """
        return self._submit(ScheduledScan(fn, delay_ms, name="OneShotScan"))

    def _submit(self, scheduled: ScheduledScan) -> ScheduledScan:
        with self._lock:
            if self._shutdown:
                raise ScannerError("Scheduler is shut down")
            self._scheduled = [s for s in self._scheduled if not s.done]
            self._scheduled.append(scheduled)
        return scheduled.start()

    def pending_count(self) -> int:
        """Number of schedules that have not finished."""
        with self._lock:
            return sum(1 for s in self._scheduled if not s.done)

    def shutdown(self, wait: bool = False, timeout: float = 5.0) -> None:
        """
        Cancel every schedule and refuse new ones.
        
        Args:
            wait: Wait for running invocations to finish
            timeout: Per-schedule wait timeout in seconds
        """
        with self._lock:
            self._shutdown = True
            scheduled = list(self._scheduled)
            self._scheduled.clear()
        
        for s in scheduled:
            s.cancel()
        if wait:
            for s in scheduled:
                s.wait(timeout=timeout)

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown
