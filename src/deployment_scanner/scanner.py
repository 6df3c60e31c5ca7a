"""Deployment scanner: periodic scan-and-reconcile of a deployment directory."""

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .config import ScannerConfig, validate_deployment_dir
from .exceptions import ScannerConfigError
from .management import ContentStore, ExecutionFacility
from .models import Operation, ScanReport, StepResult
from .registry import DeploymentRegistry
from .scheduler import ScanScheduler, ScheduledScan
from .tasks import ScannerTask, UndeployTask
from .trigger import MarkerEventTrigger
from .walker import DirectoryWalker

logger = logging.getLogger(__name__)


class ScannerState(Enum):
    """What the scanner is doing right now."""
    IDLE = "idle"
    SCANNING = "scanning"
    SUBMITTING = "submitting"


class DeploymentScanner:
    """
    Watches a deployment directory and reconciles marker files with the
    management facility.
    
    At most one scan runs at a time. Each scan walks the tree, turns marker
    changes into tasks, submits all task operations as one composite
    operation, resubmits steps the facility cancelled, and records each
    outcome in the registry and the marker files.
    """

    LOCK_POLL_SECONDS = 0.1

    def __init__(
        self,
        config: ScannerConfig,
        execution: ExecutionFacility,
        content_store: ContentStore,
        scheduler: Optional[ScanScheduler] = None,
        file_filter: Optional[Callable[[Path], bool]] = None,
    ):
        """
        Initialize the scanner and load the registry from existing markers.
        
        Args:
            config: Scanner configuration
            execution: Management execution facility
            content_store: Store for deployment content
            scheduler: Periodic task facility (a private one is created if omitted)
            file_filter: Walker filter (defaults to the config ignore patterns)
            
        Raises:
            ScannerConfigError: If the directory or a collaborator is unusable
        """
        if config is None:
            raise ScannerConfigError("null scanner config")
        if execution is None:
            raise ScannerConfigError("null execution facility")
        if content_store is None:
            raise ScannerConfigError("null content store")
        
        self.config = config
        self._deployment_dir = validate_deployment_dir(config.deployment_dir)
        self._execution = execution
        self._content_store = content_store
        
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or ScanScheduler()
        
        self._scan_interval_ms = config.scan_interval_ms
        self._scan_enabled = False
        self._scan_task: Optional[ScheduledScan] = None
        self._trigger_pending = False
        self._state = ScannerState.IDLE
        self._last_report: Optional[ScanReport] = None
        
        # Guards enable/schedule bookkeeping; _scan_lock serializes passes
        self._state_lock = threading.RLock()
        self._scan_lock = threading.Lock()
        self._interrupted = threading.Event()
        
        if file_filter is None and config.ignore_patterns:
            file_filter = config.include
        
        self._registry = DeploymentRegistry()
        self._walker = DirectoryWalker(self._registry, content_store, file_filter)
        self._trigger = (
            MarkerEventTrigger(self._deployment_dir, self.request_scan)
            if config.watch_events else None
        )
        
        self._registry.load(
            self._deployment_dir, self._execution.read_deployment_names(), file_filter
        )

    @property
    def deployment_dir(self) -> Path:
        return self._deployment_dir

    @property
    def registry(self) -> DeploymentRegistry:
        return self._registry

    @property
    def state(self) -> ScannerState:
        return self._state

    @property
    def last_report(self) -> Optional[ScanReport]:
        """Report of the most recent completed scan."""
        return self._last_report

    @property
    def is_scan_enabled(self) -> bool:
        return self._scan_enabled

    @property
    def scan_interval_ms(self) -> int:
        return self._scan_interval_ms

    def set_scan_interval(self, scan_interval_ms: int) -> None:
        """
        Change the scan interval, rescheduling a running scanner.
        
        A scan already in progress is not interrupted.
        """
        with self._state_lock:
            if scan_interval_ms == self._scan_interval_ms:
                return
            self._cancel_scan()
            self._scan_interval_ms = scan_interval_ms
            self._start_scan()

    def start_scanner(self) -> None:
        """Enable scanning and arm the schedule. No-op if already started."""
        with self._state_lock:
            if self._scan_enabled:
                return
            self._scan_enabled = True
            self._start_scan()
            if self._trigger is not None:
                self._trigger.start()
        logger.info(f"Started {type(self).__name__} for directory {self._deployment_dir}")

    def stop_scanner(self) -> None:
        """Disable scanning. A scan holding the lock completes its pass."""
        with self._state_lock:
            was_enabled = self._scan_enabled
            self._scan_enabled = False
            self._cancel_scan()
            if self._trigger is not None:
                self._trigger.stop()
        if was_enabled:
            logger.info(f"Stopped {type(self).__name__} for directory {self._deployment_dir}")

    def _start_scan(self) -> None:
        """Arm the schedule. Call with _state_lock held."""
        if not self._scan_enabled:
            return
        if self._scan_interval_ms > 0:
            self._scan_task = self._scheduler.schedule_with_fixed_delay(
                self._run_scheduled_scan, self._scan_interval_ms
            )
        else:
            self._scan_task = self._scheduler.schedule_once(self._run_scheduled_scan)

    def _cancel_scan(self) -> None:
        """Cancel the pending schedule. Call with _state_lock held."""
        if self._scan_task is not None:
            self._scan_task.cancel()
            self._scan_task = None

    def wait_for_scheduled_scan(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the current one-shot schedule has run.
        
        Returns:
            True if it finished within the timeout
        """
        task = self._scan_task
        if task is None:
            return True
        return task.wait(timeout=timeout)

    def request_scan(self) -> bool:
        """
        Ask for a one-shot scan soon.
        
        Requests arriving while an earlier one is still waiting to run are
        folded into it.
        
        Returns:
            True if a new scan was scheduled
        """
        with self._state_lock:
            if not self._scan_enabled or self._trigger_pending:
                return False
            self._trigger_pending = True
            self._scheduler.schedule_once(
                self._run_triggered_scan, self.config.trigger_debounce_ms
            )
            return True

    def _run_triggered_scan(self) -> None:
        with self._state_lock:
            self._trigger_pending = False
        self._run_scheduled_scan()

    def _run_scheduled_scan(self) -> None:
        try:
            self.scan()
        except Exception as e:
            logger.error(f"Scan of {self._deployment_dir} threw exception: {e}", exc_info=True)

    def _acquire_scan_lock(self) -> bool:
        while not self._scan_lock.acquire(timeout=self.LOCK_POLL_SECONDS):
            if self._interrupted.is_set():
                return False
        return True

    def scan(self) -> Optional[ScanReport]:
        """
        Run one scan pass.
        
        Waits for any running pass to finish first. Gives up without side
        effects if the scanner is closed while waiting.
        
        Returns:
            The scan report, or None if the scan did not run or failed
        """
        if not self._acquire_scan_lock():
            logger.debug(f"Scan of {self._deployment_dir} interrupted while waiting for lock")
            return None
        try:
            # Confirm the scan is still wanted
            if not self._scan_enabled:
                return None
            self._state = ScannerState.SCANNING
            try:
                report = self._scan_locked()
            except Exception as e:
                logger.error(f"Scan of {self._deployment_dir} failed: {e}", exc_info=True)
                return None
            self._last_report = report
            return report
        finally:
            self._state = ScannerState.IDLE
            self._scan_lock.release()

    def _scan_locked(self) -> ScanReport:
        logger.debug(f"Scanning directory {self._deployment_dir} for deployment content changes")
        
        registered = self._execution.read_deployment_names()
        to_remove = set(self._registry.names())
        tasks: List[ScannerTask] = self._walker.scan_directory(
            self._deployment_dir, registered, to_remove
        )
        
        # Anything deployed that the walk did not see has been removed
        for missing in sorted(to_remove):
            tasks.append(UndeployTask(missing, self._registry))
        
        report = ScanReport(task_count=len(tasks))
        if tasks:
            pending = []
            for task in tasks:
                operation = task.build_operation()
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug(
                        f"Deployment scan of [{self._deployment_dir}] found update action [{operation.to_dict()}]"
                    )
                pending.append((task, operation))
            self._state = ScannerState.SUBMITTING
            self._submit(pending, report)
        
        logger.debug("Scan complete")
        return report

    def _submit(self, pending: List[Tuple[ScannerTask, Operation]], report: ScanReport) -> None:
        """Submit task operations until every task is resolved."""
        max_rounds = self.config.max_retry_rounds
        
        while pending:
            composite = Operation.composite([operation for _, operation in pending])
            results = self._execution.execute(composite)
            report.rounds += 1
            
            to_retry = []
            for i, (task, operation) in enumerate(pending):
                result = results[i] if i < len(results) else StepResult.failed(
                    f"No result returned for step {i + 1}"
                )
                if result.is_success:
                    task.on_success()
                    report.succeeded += 1
                elif result.is_cancelled:
                    to_retry.append((task, operation))
                else:
                    task.on_failure(result.failure_description)
                    report.failed += 1
            
            if to_retry and max_rounds is not None and report.rounds >= max_rounds:
                for task, _ in to_retry:
                    logger.warning(f"Giving up on {task!r} after {report.rounds} cancelled round(s)")
                    task.on_failure(f"Operation cancelled {report.rounds} times")
                    report.failed += 1
                to_retry = []
            
            if to_retry:
                logger.debug(f"Retrying {len(to_retry)} cancelled update(s)")
            report.retried += len(to_retry)
            pending = to_retry

    def close(self) -> None:
        """Stop scanning, abandon queued scans and release the scheduler."""
        self._interrupted.set()
        self.stop_scanner()
        if self._owns_scheduler:
            self._scheduler.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
