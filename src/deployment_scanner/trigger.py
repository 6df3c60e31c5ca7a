"""Filesystem-event triggered scans using the watchdog library."""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .markers import classify

logger = logging.getLogger(__name__)


class MarkerEventHandler(FileSystemEventHandler):
    """Calls back whenever a marker file is created, modified, deleted or moved."""

    def __init__(self, callback: Callable[[], object]):
        super().__init__()
        self.callback = callback

    def _is_marker(self, path) -> bool:
        if not path:
            return False
        if isinstance(path, bytes):
            path = path.decode(errors="replace")
        return classify(Path(path).name) is not None

    def _emit(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        dest_path = getattr(event, "dest_path", None)
        if not (self._is_marker(event.src_path) or self._is_marker(dest_path)):
            return
        logger.debug(f"Marker event {event.event_type}: {event.src_path}")
        self.callback()

    def on_created(self, event):
        self._emit(event)

    def on_deleted(self, event):
        self._emit(event)

    def on_modified(self, event):
        self._emit(event)

    def on_moved(self, event):
        self._emit(event)


class MarkerEventTrigger:
    """
    Watches the deployment directory and requests a scan on marker changes.
    
    Complements the periodic schedule; the scan itself still decides what
    changed, so spurious events are harmless.
    """

    def __init__(self, root: Path, request_scan: Callable[[], object]):
        """
        Initialize the trigger.
        
        Args:
            root: Deployment directory to observe recursively
            request_scan: Callback asking the scanner for a scan
        """
        self.root = root
        self.handler = MarkerEventHandler(request_scan)
        self._observer: Optional[Observer] = None
        self._lock = threading.Lock()

    def start(self) -> bool:
        """
        Start observing.
        
        Returns:
            True if observation started, False if already running
        """
        with self._lock:
            if self._observer is not None:
                return False
            observer = Observer()
            observer.schedule(self.handler, str(self.root), recursive=True)
            observer.start()
            self._observer = observer
            logger.info(f"Watching {self.root} for marker file events")
            return True

    def stop(self) -> bool:
        """
        Stop observing.
        
        Returns:
            True if observation stopped, False if it was not running
        """
        with self._lock:
            if self._observer is None:
                return False
            observer = self._observer
            self._observer = None
        
        observer.stop()
        observer.join(timeout=5.0)
        return True

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._observer is not None
